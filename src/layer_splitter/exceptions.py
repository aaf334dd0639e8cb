"""Custom exceptions for the layer splitter."""

from pathlib import Path
from typing import Optional, Union


class LayerSplitterError(Exception):
    """Base exception for all layer splitter errors."""

    pass


class UsageError(LayerSplitterError):
    """Raised when the caller supplied invalid arguments.

    Usage errors are raised before any file is written, so they never
    trigger workspace cleanup.
    """

    pass


class PlanError(UsageError):
    """Raised when a split plan (names and layer counts) is malformed."""

    pass


class PathArgumentError(UsageError):
    """Raised when a target, work or output path is missing or of the wrong kind."""

    def __init__(self, message: str, path: Union[str, Path]) -> None:
        super().__init__(f"{message}: '{path}'")
        self.path = Path(path)


class WorkspaceError(LayerSplitterError):
    """Raised when a working directory cannot be prepared."""

    pass


class ArchiveCheckError(LayerSplitterError):
    """Base class for format and integrity failures found mid-operation."""

    pass


class FormatError(ArchiveCheckError):
    """Raised when an extracted image does not match the expected layout."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None) -> None:
        if path is not None:
            message = f"{message}: '{path}'"
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class FileExtensionError(ArchiveCheckError):
    """Raised when a file does not carry the expected archive extension."""

    def __init__(self, path: Union[str, Path], extension: str) -> None:
        super().__init__(f"File should have extension '{extension}': '{path}'")
        self.path = Path(path)
        self.extension = extension


class DepthExceededError(ArchiveCheckError):
    """Raised when a directory nests entries deeper than the codec allows."""

    def __init__(self, path: Union[str, Path], depth: int, max_depth: int) -> None:
        super().__init__(
            f"Entry nested {depth} levels deep (max {max_depth}): '{path}'"
        )
        self.path = Path(path)
        self.depth = depth
        self.max_depth = max_depth


class AllocationError(ArchiveCheckError):
    """Raised when layer counts cannot be allocated against an image."""

    pass


class IntegrityError(ArchiveCheckError):
    """Base class for digest and chain verification failures."""

    pass


class DigestMismatchError(IntegrityError):
    """Raised when recomputed content digest differs from the recorded one."""

    def __init__(
        self, expected: str, actual: str, path: Optional[Union[str, Path]] = None
    ) -> None:
        where = f" for '{path}'" if path is not None else ""
        super().__init__(
            f"Checksum mismatch{where}\nexpected: '{expected}'\nactual: '{actual}'"
        )
        self.expected = expected
        self.actual = actual
        self.path = Path(path) if path is not None else None


class ChainMismatchError(IntegrityError):
    """Raised when a split's chain metadata does not follow its predecessor."""

    def __init__(self, index: int, field: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Split {index} has bad '{field}'\nexpected: '{expected}'\nactual: '{actual}'"
        )
        self.index = index
        self.field = field
        self.expected = expected
        self.actual = actual


class SplitIndexError(ArchiveCheckError):
    """Raised when split indices are duplicated or leave a gap."""

    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"Splits unmatched at index {index}: {reason}")
        self.index = index
        self.reason = reason


class SplitMetadataError(ArchiveCheckError):
    """Raised when a split's metadata document is missing or malformed."""

    pass


class InternalError(LayerSplitterError):
    """Raised when a previously validated invariant turns out false.

    Callers must not recover from this error; the CLI cleans up and
    terminates the process.
    """

    pass
