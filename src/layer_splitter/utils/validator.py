"""Argument validation utilities for split plans and compression levels."""

import re
from pathlib import Path
from typing import Union

from ..exceptions import PathArgumentError, PlanError

MIN_LAYER_COUNT = -1
MAX_LAYER_COUNT = 127
SENTINEL_COUNT = -1

SPLIT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

COMPRESS_LEVEL_ALIASES = {"none": 0, "fast": 1, "default": 6, "best": 9}


def is_valid_split_name(name: str) -> bool:
    """Check if a split name is non-empty and safe to use as a file name."""
    return isinstance(name, str) and bool(SPLIT_NAME_PATTERN.match(name))


def is_valid_layer_count(count: int) -> bool:
    """Check if a layer count is a positive integer or the -1 sentinel."""
    if isinstance(count, bool) or not isinstance(count, int):
        return False
    if count == SENTINEL_COUNT:
        return True
    return 1 <= count <= MAX_LAYER_COUNT


def count_sentinels(counts: list[int]) -> int:
    """Count how many layer counts carry the sentinel value."""
    return sum(1 for count in counts if count == SENTINEL_COUNT)


def parse_layer_count(raw: str) -> int:
    """Parse one layer count from command line text.

    Raises:
        PlanError: If the text is not an integer in [-1, 127]
    """
    try:
        value = int(raw.strip())
    except ValueError as e:
        raise PlanError(f"Layer count '{raw}' is not INT type") from e
    if value < MIN_LAYER_COUNT or value > MAX_LAYER_COUNT:
        raise PlanError(
            f"Layer count {value} is not between {MIN_LAYER_COUNT} to {MAX_LAYER_COUNT}"
        )
    return value


def validate_plan(names: list[str], counts: list[int]) -> None:
    """Validate an ordered split plan.

    Args:
        names: Split names, in emission order
        counts: Layer count per split, -1 meaning "all remaining layers"

    Raises:
        PlanError: If the plan is malformed
    """
    if not names:
        raise PlanError("Split plan has no names")

    if len(names) != len(counts):
        raise PlanError(
            f"Count of names '{len(names)}' isn't equal to count of layers '{len(counts)}'"
        )

    seen: set[str] = set()
    for name in names:
        if not is_valid_split_name(name):
            raise PlanError(
                f"Split name '{name}' must be non-empty and use only letters, digits, '-' or '_'"
            )
        if name in seen:
            raise PlanError(f"Split name '{name}' is used more than once")
        seen.add(name)

    for name, count in zip(names, counts):
        if not is_valid_layer_count(count):
            raise PlanError(
                f"Layer count of split '{name}' can only be positive or -1, actually {count!r}"
            )

    if count_sentinels(counts) > 1:
        sentinel_names = [n for n, c in zip(names, counts) if c == SENTINEL_COUNT]
        raise PlanError(f"More than 1 split of -1 layers: {sentinel_names}")


def parse_compress_level(level: Union[str, int]) -> int:
    """Parse a gzip compression level.

    Args:
        level: 0-9, or one of none/fast/default/best (case-insensitive)

    Returns:
        Integer compression level

    Raises:
        PlanError: If the level is not recognized
    """
    if isinstance(level, int) and not isinstance(level, bool):
        value = level
    else:
        text = str(level).strip().lower()
        if text in COMPRESS_LEVEL_ALIASES:
            return COMPRESS_LEVEL_ALIASES[text]
        try:
            value = int(text)
        except ValueError as e:
            raise PlanError(f"Unknown compress level '{level}'") from e

    if not 0 <= value <= 9:
        raise PlanError(f"Compress level {value} is not between 0 to 9")
    return value


def require_file(path: Path) -> Path:
    """Ensure path exists and is a regular file."""
    if not path.exists():
        raise PathArgumentError("Path does not exist", path)
    if not path.is_file():
        raise PathArgumentError("Path is a directory rather than file", path)
    return path


def require_directory(path: Path) -> Path:
    """Ensure path exists and is a directory."""
    if not path.exists():
        raise PathArgumentError("Path does not exist", path)
    if not path.is_dir():
        raise PathArgumentError("Path is a file rather than directory", path)
    return path
