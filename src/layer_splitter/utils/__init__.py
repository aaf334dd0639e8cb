"""Utility functions for the layer splitter."""

from .digest import (
    calculate_digest,
    calculate_file_digest,
    calculate_string_digest,
    validate_digest,
)

__all__ = [
    "calculate_digest",
    "calculate_file_digest",
    "calculate_string_digest",
    "validate_digest",
]
