"""Layer Splitter - split docker image archives into chained parts and merge them back."""

__version__ = "0.1.0"

from .exceptions import (
    ArchiveCheckError,
    ChainMismatchError,
    DigestMismatchError,
    FormatError,
    IntegrityError,
    InternalError,
    LayerSplitterError,
    PlanError,
    SplitIndexError,
    UsageError,
)
from .merge import merge_splits
from .split import split_image
from .tar.inspector import inspect_image

__all__ = [
    "split_image",
    "merge_splits",
    "inspect_image",
    "LayerSplitterError",
    "UsageError",
    "PlanError",
    "ArchiveCheckError",
    "FormatError",
    "IntegrityError",
    "DigestMismatchError",
    "ChainMismatchError",
    "SplitIndexError",
    "InternalError",
]
