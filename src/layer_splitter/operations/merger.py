"""Verify and reassemble split archives into one image archive."""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..core.logging import log
from ..core.types import SPLIT_METADATA_FILENAME, SplitMetadata
from ..core.workspace import Workspace
from ..exceptions import FileExtensionError, FormatError, SplitIndexError
from ..tar.codec import pack_tar, unpack_tar
from ..tar.compress import unpack_gz
from ..tar.inspector import DockerArchiveInspector, Inspector
from .chain import ChainLinker, Sha256ChainLinker, parent_id_of
from .splitter import GZ_EXTENSION

MERGE_OUTPUT_NAME = "merge.tar"


@dataclass
class SplitEntry:
    """One decoded split awaiting verification."""

    metadata: SplitMetadata
    tar_path: Path
    dir_path: Path

    @property
    def index(self) -> int:
        return self.metadata.index


def collect_split_tars(target_dir: Path, workspace: Workspace) -> List[Path]:
    """Decode every ``.tar.gz`` directly under target_dir into the workspace.

    Subdirectories are skipped; any other file is rejected.
    """
    tar_paths = []
    for entry in sorted(target_dir.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            continue
        if not entry.name.endswith(GZ_EXTENSION):
            raise FileExtensionError(entry, "tar.gz")
        tar_path = unpack_gz(entry, workspace.root)
        log.info("merge.decode", source=str(entry), tar=tar_path.name)
        tar_paths.append(tar_path)

    if not tar_paths:
        raise FormatError("No split archives found", target_dir)
    return tar_paths


def extract_split_directories(tar_paths: Sequence[Path], split_root: Path) -> List[SplitEntry]:
    """Extract each split tar into its own directory and load its metadata."""
    entries = []
    for tar_path in tar_paths:
        dir_path = split_root / tar_path.name
        dir_path.mkdir()
        unpack_tar(tar_path, dir_path)
        metadata = SplitMetadata.load(dir_path / SPLIT_METADATA_FILENAME)
        entries.append(SplitEntry(metadata=metadata, tar_path=tar_path, dir_path=dir_path))
    return entries


def order_splits(entries: Sequence[SplitEntry]) -> List[SplitEntry]:
    """Sort splits by index, requiring indices to be exactly 0..N-1.

    Raises:
        SplitIndexError: On a duplicated or missing index
    """
    ordered = sorted(entries, key=lambda e: e.index)
    for position, entry in enumerate(ordered):
        if entry.index < position:
            raise SplitIndexError(entry.index, "duplicate index")
        if entry.index > position:
            raise SplitIndexError(position, "missing index")
    return ordered


def verify_chain(ordered: Sequence[SplitEntry], linker: ChainLinker) -> None:
    """Walk the splits in index order and verify every chain link."""
    stack_id, parent_id = linker.ORIGIN
    for entry in ordered:
        stack_id = linker.verify(entry.metadata, stack_id, parent_id)
        parent_id = parent_id_of(entry.tar_path)
        log.info("merge.verify", index=entry.index, tar=entry.tar_path.name)


def merge_split_directories(ordered: Sequence[SplitEntry], merge_dir: Path) -> None:
    """Copy split contents into merge_dir in index order, dropping metadata.

    Directories are merged; a later split's file replaces an earlier one.
    """
    for entry in ordered:
        (entry.dir_path / SPLIT_METADATA_FILENAME).unlink()
        for item in sorted(entry.dir_path.iterdir(), key=lambda p: p.name):
            dst = merge_dir / item.name
            if item.is_dir():
                shutil.copytree(item, dst, dirs_exist_ok=True)
            else:
                shutil.copyfile(item, dst)


def run_merge(
    target_dir: Path,
    workspace: Workspace,
    output_dir: Path,
    inspector: Optional[Inspector] = None,
    linker: Optional[ChainLinker] = None,
) -> Path:
    """Run the whole merge procedure inside a prepared workspace.

    Returns:
        Path of the merged image tar
    """
    inspector = inspector or DockerArchiveInspector()
    linker = linker or Sha256ChainLinker()

    log.info("merge.extract", target=str(target_dir))
    tar_paths = collect_split_tars(target_dir, workspace)
    entries = extract_split_directories(tar_paths, workspace.split_dir)

    ordered = order_splits(entries)
    verify_chain(ordered, linker)

    log.info("merge.combine", splits=len(ordered), dest=str(workspace.merge_dir))
    merge_split_directories(ordered, workspace.merge_dir)

    inspector.inspect(workspace.merge_dir)

    output_path = workspace.track(output_dir / MERGE_OUTPUT_NAME)
    digest = pack_tar(workspace.merge_dir, output_path)
    log.info("merge.pack", output=str(output_path), digest=digest)
    return output_path
