"""Digest calculation and validation utilities."""

import hashlib
import re
from pathlib import Path
from typing import BinaryIO, Union

# Regex pattern for a bare lowercase sha256 hex digest
HEX_DIGEST_PATTERN = re.compile(r"^[a-f0-9]{64}$")

DIGEST_PREFIX = "sha256:"

_CHUNK_SIZE = 1024 * 1024


def calculate_digest(data: Union[bytes, bytearray]) -> str:
    """Calculate the sha256 hex digest of data.

    Args:
        data: Data to hash

    Returns:
        Lowercase hex digest without algorithm prefix

    Raises:
        ValueError: If data is not bytes-like
    """
    if not isinstance(data, (bytes, bytearray)):
        raise ValueError("Data must be bytes or bytearray")

    return hashlib.sha256(data).hexdigest()


def calculate_string_digest(text: str) -> str:
    """Calculate the sha256 hex digest of a UTF-8 encoded string."""
    if not isinstance(text, str):
        raise ValueError("Text must be str")
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def calculate_stream_digest(stream: BinaryIO) -> str:
    """Calculate the sha256 hex digest of a binary stream, read in chunks."""
    hasher = hashlib.sha256()
    for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
        hasher.update(chunk)
    return hasher.hexdigest()


def calculate_file_digest(path: Union[str, Path]) -> str:
    """Calculate the sha256 hex digest of a file's contents.

    Args:
        path: File to hash

    Returns:
        Lowercase hex digest

    Raises:
        OSError: If the file cannot be read
    """
    with open(path, "rb") as f:
        return calculate_stream_digest(f)


def validate_digest(digest: str) -> bool:
    """Check that digest is a bare 64-character lowercase hex string."""
    if not isinstance(digest, str):
        return False
    return bool(HEX_DIGEST_PATTERN.match(digest))


def strip_digest_prefix(digest: str) -> str:
    """Remove the 'sha256:' prefix from a prefixed digest.

    Raises:
        ValueError: If the prefix is missing
    """
    if not digest.startswith(DIGEST_PREFIX):
        raise ValueError(f"Digest lacks '{DIGEST_PREFIX}' prefix: {digest}")
    return digest[len(DIGEST_PREFIX) :]
