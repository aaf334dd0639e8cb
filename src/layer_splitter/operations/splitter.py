"""Split an image archive into chained, gzip-compressed split archives."""

import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from ..core.logging import log
from ..core.types import SPLIT_METADATA_FILENAME, SplitPlan
from ..core.workspace import Workspace, remove_path
from ..exceptions import FileExtensionError, InternalError
from ..tar.codec import pack_tar, unpack_tar
from ..tar.compress import pack_gz
from ..tar.inspector import DockerArchiveInspector, Inspector
from ..tar.models import ROLE_NAMES, ImageLayout
from .allocate import allocate, slice_bounds
from .chain import ChainLinker, Sha256ChainLinker

TAR_EXTENSION = ".tar"
GZ_EXTENSION = ".tar.gz"


def extract_image(tar_path: Path, workspace: Workspace, inspector: Inspector) -> ImageLayout:
    """Extract the image tar into the workspace and validate it."""
    if tar_path.suffix != TAR_EXTENSION:
        raise FileExtensionError(tar_path, "tar")

    log.info("split.extract", target=str(tar_path), dest=str(workspace.merge_dir))
    unpack_tar(tar_path, workspace.merge_dir)
    return inspector.inspect(workspace.merge_dir)


def copy_split_directories(
    names: Sequence[str],
    resolved: Sequence[int],
    layout: ImageLayout,
    split_root: Path,
) -> List[Path]:
    """Copy each split's slice of layer directories into split_root/<name>.

    Role files (config, manifest, repositories) travel with the last split.

    Returns:
        The per-split directories, in plan order
    """
    bounds = slice_bounds(resolved)
    if not bounds or bounds[-1].stop != layout.layer_count:
        raise InternalError(
            f"Resolved counts {list(resolved)} do not cover {layout.layer_count} layers"
        )

    split_dirs = []
    for name, bound in zip(names, bounds):
        split_dir = split_root / name
        split_dir.mkdir()
        for position in bound:
            layer_dir = layout.layers[position]
            # a layer listed twice in the manifest is copied once per split
            shutil.copytree(layer_dir, split_dir / layer_dir.name, dirs_exist_ok=True)
        log.info("split.copy", name=name, layers=len(bound))
        split_dirs.append(split_dir)

    last_dir = split_dirs[-1]
    for role in ROLE_NAMES:
        src = layout.roles[role]
        shutil.copyfile(src, last_dir / src.name)
    return split_dirs


def pack_splits(
    split_dirs: Sequence[Path],
    workspace: Workspace,
    output_dir: Path,
    compress_level: int,
    linker: ChainLinker,
) -> List[Path]:
    """Chain, tar and gzip every split in order.

    Each split's metadata depends on the previous split's tar digest, so
    splits are packed strictly one after another.
    """
    stack_id, parent_id = linker.ORIGIN
    outputs = []
    for index, split_dir in enumerate(split_dirs):
        name = split_dir.name
        metadata = linker.link(index, stack_id, parent_id)
        metadata.dump(split_dir / SPLIT_METADATA_FILENAME)

        tar_path = workspace.root / f"{name}{TAR_EXTENSION}"
        tar_digest = pack_tar(split_dir, tar_path)
        remove_path(split_dir)

        gz_path = workspace.track(output_dir / f"{name}{GZ_EXTENSION}")
        pack_gz(tar_path, gz_path, compress_level)
        log.info(
            "split.pack",
            name=name,
            index=index,
            output=str(gz_path),
            digest=tar_digest,
            level=compress_level,
        )

        stack_id, parent_id = metadata.stack_id, tar_digest
        outputs.append(gz_path)
    return outputs


def run_split(
    tar_path: Path,
    plan: SplitPlan,
    workspace: Workspace,
    output_dir: Path,
    compress_level: int,
    inspector: Optional[Inspector] = None,
    linker: Optional[ChainLinker] = None,
) -> List[Path]:
    """Run the whole split procedure inside a prepared workspace.

    Returns:
        Paths of the produced ``<name>.tar.gz`` files, in plan order
    """
    inspector = inspector or DockerArchiveInspector()
    linker = linker or Sha256ChainLinker()

    layout = extract_image(tar_path, workspace, inspector)

    remainder = [d.name for d in plan.descriptors if d.is_remainder]
    log.info(
        "split.allocate",
        names=plan.names,
        layers=plan.layers,
        remainder=remainder[0] if remainder else None,
        total=layout.layer_count,
    )
    resolved = allocate(plan.names, plan.layers, layout.layer_count)

    split_dirs = copy_split_directories(plan.names, resolved, layout, workspace.split_dir)
    return pack_splits(split_dirs, workspace, output_dir, compress_level, linker)
