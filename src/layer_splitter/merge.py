"""Functional API for merging split archives back into an image archive."""

from pathlib import Path
from typing import Optional, Union

from .core.config import SETTINGS
from .core.logging import log
from .core.workspace import Workspace
from .operations.merger import run_merge
from .split import check_work_dir
from .utils.validator import require_directory

PathLike = Union[str, Path]


def merge_splits(
    target: PathLike,
    work_dir: Optional[PathLike] = None,
    output_dir: Optional[PathLike] = None,
) -> Path:
    """Verify and merge the split archives in target into ``merge.tar``.

    Args:
        target: Directory holding the ``.tar.gz`` split archives
        work_dir: Temporary directory, recreated and removed by this call
        output_dir: Existing directory receiving ``merge.tar``

    Returns:
        Path of the merged image tar

    Raises:
        UsageError: If arguments are invalid; nothing has been written
        ArchiveCheckError: If a split is damaged, missing, duplicated or out
            of chain, or the merged image is invalid
        InternalError: If an internal invariant broke

    Examples:
        merge_splits("out", output_dir="restored")
    """
    target_path = require_directory(Path(target))
    out_path = require_directory(Path(output_dir if output_dir is not None else SETTINGS.OUTPUT_DIR))
    work_path = Path(work_dir if work_dir is not None else SETTINGS.WORK_DIR)
    check_work_dir(work_path, target_path, out_path)

    log.info("merge.start", target=str(target_path))
    with Workspace(work_path, attempts=SETTINGS.MKDIR_ATTEMPTS) as workspace:
        output = run_merge(target_path, workspace, out_path)
    log.info("merge.done", output=str(output))
    return output
