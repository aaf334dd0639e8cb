"""Working directory management and failure cleanup."""

import shutil
from pathlib import Path
from types import TracebackType
from typing import List, Optional, Type, Union

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..exceptions import WorkspaceError
from .config import SETTINGS
from .logging import log

SPLIT_SUBDIR = "split"
MERGE_SUBDIR = "merge"


def make_directory(
    path: Path,
    attempts: Optional[int] = None,
    backoff_max: Optional[float] = None,
) -> None:
    """Create a directory, retrying while a previous deletion settles.

    Args:
        path: Directory to create; its parent must exist
        attempts: Maximum number of mkdir attempts
        backoff_max: Upper bound of the exponential wait, in seconds

    Raises:
        WorkspaceError: If the directory still cannot be created
    """
    attempts = attempts if attempts is not None else SETTINGS.MKDIR_ATTEMPTS
    backoff_max = backoff_max if backoff_max is not None else SETTINGS.MKDIR_BACKOFF_MAX

    retrying = Retrying(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_exponential(multiplier=0.05, max=backoff_max),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    try:
        for attempt in retrying:
            with attempt:
                path.mkdir()
    except OSError as e:
        raise WorkspaceError(
            f"Failed to create directory '{path}' after {attempts} attempts: {e}"
        ) from e


def remove_path(path: Path) -> None:
    """Remove a file or a directory tree if it exists."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


class Workspace:
    """Working directory of one split or merge invocation.

    Every path this invocation creates (the working directory itself and any
    output file) is registered with :meth:`track`. On failure exactly those
    paths are removed; on success only the working directory is.

    Usage::

        with Workspace(Path("tmp")) as ws:
            ws.track(output_path)
            ...
    """

    def __init__(self, root: Union[str, Path], attempts: Optional[int] = None) -> None:
        self.root = Path(root)
        self.attempts = attempts
        self.created: List[Path] = []

    @property
    def split_dir(self) -> Path:
        return self.root / SPLIT_SUBDIR

    @property
    def merge_dir(self) -> Path:
        return self.root / MERGE_SUBDIR

    def prepare(self) -> "Workspace":
        """Recreate the working directory with empty split/ and merge/ subdirectories."""
        if self.root.exists() or self.root.is_symlink():
            log.info("workspace.reset", path=str(self.root))
            try:
                remove_path(self.root)
            except OSError as e:
                raise WorkspaceError(f"Failed to reset working directory '{self.root}': {e}") from e

        make_directory(self.root, attempts=self.attempts)
        self.track(self.root)
        try:
            make_directory(self.split_dir, attempts=self.attempts)
            make_directory(self.merge_dir, attempts=self.attempts)
        except WorkspaceError:
            self.cleanup()
            raise
        return self

    def track(self, path: Path) -> Path:
        """Register a path created by this invocation."""
        if path not in self.created:
            self.created.append(path)
        return path

    def release(self) -> None:
        """Remove the working directory after a successful run."""
        log.info("workspace.clean", path=str(self.root))
        remove_path(self.root)
        if self.root in self.created:
            self.created.remove(self.root)

    def cleanup(self) -> None:
        """Best-effort removal of every tracked path; failures are only logged."""
        for path in reversed(self.created):
            try:
                remove_path(path)
            except OSError as e:
                log.error("workspace.cleanup_failed", path=str(path), error=str(e))
        self.created.clear()

    def __enter__(self) -> "Workspace":
        return self.prepare()

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if exc_type is None:
            self.release()
            return
        log.warning(
            "workspace.cleanup_on_failure",
            paths=[str(p) for p in self.created],
            error=str(exc_val),
        )
        self.cleanup()
