"""Hash chain linking consecutive splits.

Every split records the digest of its predecessor's tar (``parent_id``) and
a running ``stack_id``. Split 0 starts from empty strings::

    parent_id[0] = ""
    parent_id[i] = sha256(tar[i - 1])
    stack_id[i]  = sha256(stack_id[i - 1] + "\\n" + parent_id[i])   # stack_id[-1] = ""

Changing, dropping or reordering any split breaks every later link.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Tuple, Union

from ..core.types import SplitMetadata
from ..exceptions import ChainMismatchError
from ..utils.digest import calculate_digest, calculate_file_digest, calculate_string_digest


def next_stack_id(prev_stack_id: str, parent_id: str) -> str:
    """Compute the stack id that follows prev_stack_id."""
    return calculate_string_digest(f"{prev_stack_id}\n{parent_id}")


def parent_id_of(archive: Union[bytes, str, Path]) -> str:
    """Compute the parent id a split's successor must record.

    Args:
        archive: The split's tar, as bytes or as a file path
    """
    if isinstance(archive, (bytes, bytearray)):
        return calculate_digest(archive)
    return calculate_file_digest(archive)


class ChainLinker(ABC):
    """Generates and verifies split chain metadata, one split at a time.

    Callers thread ``(stack_id, parent_id)`` through the sequence: start from
    :attr:`ORIGIN`, and after each split pass on its stack id together with
    the digest of its tar.
    """

    ORIGIN: Tuple[str, str] = ("", "")

    @abstractmethod
    def link(self, index: int, prev_stack_id: str, parent_id: str) -> SplitMetadata:
        """Build metadata for split index."""

    @abstractmethod
    def verify(self, metadata: SplitMetadata, prev_stack_id: str, parent_id: str) -> str:
        """Check recorded metadata and return the verified stack id."""


class Sha256ChainLinker(ChainLinker):
    """Default chain linker using sha256 throughout."""

    def link(self, index: int, prev_stack_id: str, parent_id: str) -> SplitMetadata:
        return SplitMetadata(
            index=index,
            parent_id=parent_id,
            stack_id=next_stack_id(prev_stack_id, parent_id),
        )

    def verify(self, metadata: SplitMetadata, prev_stack_id: str, parent_id: str) -> str:
        """Verify a split's recorded metadata.

        Args:
            metadata: Metadata read from the split
            prev_stack_id: Verified stack id of the previous split
            parent_id: Digest of the previous split's tar

        Returns:
            The split's stack id

        Raises:
            ChainMismatchError: If parent_id or stack_id is wrong
        """
        if metadata.parent_id != parent_id:
            raise ChainMismatchError(metadata.index, "parent_id", parent_id, metadata.parent_id)

        expected_stack_id = next_stack_id(prev_stack_id, parent_id)
        if metadata.stack_id != expected_stack_id:
            raise ChainMismatchError(
                metadata.index, "stack_id", expected_stack_id, metadata.stack_id
            )
        return expected_stack_id
