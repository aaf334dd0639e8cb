"""Functional API for splitting an image archive."""

from pathlib import Path
from typing import List, Optional, Sequence, Union

from .core.config import SETTINGS
from .core.logging import log
from .core.types import SplitPlan
from .core.workspace import Workspace
from .exceptions import PathArgumentError
from .operations.splitter import run_split
from .utils.validator import parse_compress_level, require_directory, require_file

PathLike = Union[str, Path]


def _is_within(path: Path, parent: Path) -> bool:
    path = path.resolve()
    parent = parent.resolve()
    return path == parent or parent in path.parents


def check_work_dir(work_dir: Path, *others: Path) -> None:
    """Reject a working directory that would swallow an input or output path.

    The working directory is deleted before and after every run.

    Raises:
        PathArgumentError: If any of others lies inside work_dir
    """
    for other in others:
        if _is_within(other, work_dir):
            raise PathArgumentError(f"Path lies inside working directory '{work_dir}'", other)


def split_image(
    target: PathLike,
    names: Sequence[str],
    layers: Sequence[int],
    work_dir: Optional[PathLike] = None,
    output_dir: Optional[PathLike] = None,
    compress_level: Union[str, int, None] = None,
) -> List[Path]:
    """Split an image tar into one ``<name>.tar.gz`` per split.

    Args:
        target: Image archive produced by ``docker save``
        names: Split names, base layers first
        layers: Layer count per split; one entry may be -1 for "the rest"
        work_dir: Temporary directory, recreated and removed by this call
        output_dir: Existing directory receiving the split archives
        compress_level: 0-9 or none/fast/default/best

    Returns:
        Paths of the split archives, in plan order

    Raises:
        UsageError: If arguments are invalid; nothing has been written
        ArchiveCheckError: If the image or the plan does not fit; every
            path created by this call has been removed
        InternalError: If an internal invariant broke; paths removed as above

    Examples:
        split_image("app.tar", ["os", "lib", "app"], [1, -1, 1], output_dir="out")
    """
    target_path = require_file(Path(target))
    out_path = require_directory(Path(output_dir if output_dir is not None else SETTINGS.OUTPUT_DIR))
    work_path = Path(work_dir if work_dir is not None else SETTINGS.WORK_DIR)
    check_work_dir(work_path, target_path, out_path)

    plan = SplitPlan.from_lists(list(names), list(layers))
    level = parse_compress_level(
        compress_level if compress_level is not None else SETTINGS.COMPRESS_LEVEL
    )

    log.info("split.start", target=str(target_path), names=plan.names, layers=plan.layers)
    with Workspace(work_path, attempts=SETTINGS.MKDIR_ATTEMPTS) as workspace:
        outputs = run_split(target_path, plan, workspace, out_path, level)
    log.info("split.done", outputs=[str(p) for p in outputs])
    return outputs
