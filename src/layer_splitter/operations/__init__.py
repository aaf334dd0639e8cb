"""Split and merge operations."""

from .allocate import allocate
from .chain import ChainLinker, Sha256ChainLinker, next_stack_id, parent_id_of
from .merger import run_merge
from .splitter import run_split

__all__ = [
    "ChainLinker",
    "Sha256ChainLinker",
    "allocate",
    "next_stack_id",
    "parent_id_of",
    "run_merge",
    "run_split",
]
