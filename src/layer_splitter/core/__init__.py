"""Core building blocks: settings, logging, shared types and workspace handling."""
