"""Deterministic tar encoding and safe tar decoding of image directories."""

import io
import os
import stat
import tarfile
from pathlib import Path
from typing import BinaryIO, Iterator, Tuple, Union

from ..core.logging import log
from ..exceptions import DepthExceededError, FormatError
from ..utils.digest import calculate_file_digest

# Image layout is archive root -> layer directory -> layer member.
MAX_DEPTH = 2

DETERMINISTIC_MTIME = 0
FILE_MODE = 0o644
DIR_MODE = 0o755

TAR_FORMAT = tarfile.GNU_FORMAT

_COPY_BUFSIZE = 1024 * 1024


def iter_entries(root: Path) -> Iterator[Tuple[Path, str]]:
    """Yield (path, archive name) pairs under root in sorted order.

    Entries are named relative to root, so the wrapping directory never
    appears in member names. Directories are yielded before their contents.

    Raises:
        DepthExceededError: If anything is nested more than MAX_DEPTH levels
        FormatError: If an entry is neither a regular file nor a directory
    """
    yield from _walk(root, root, depth=1)


def _walk(root: Path, current: Path, depth: int) -> Iterator[Tuple[Path, str]]:
    for name in sorted(os.listdir(current)):
        path = current / name
        arcname = path.relative_to(root).as_posix()
        if depth > MAX_DEPTH:
            raise DepthExceededError(arcname, depth, MAX_DEPTH)

        mode = path.lstat().st_mode
        if stat.S_ISDIR(mode):
            yield path, arcname
            yield from _walk(root, path, depth + 1)
        elif stat.S_ISREG(mode):
            yield path, arcname
        else:
            raise FormatError("Unsupported entry type inside archive directory", arcname)


def _make_tarinfo(path: Path, arcname: str) -> tarfile.TarInfo:
    info = tarfile.TarInfo(arcname)
    info.mtime = DETERMINISTIC_MTIME
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    if path.is_dir():
        info.type = tarfile.DIRTYPE
        info.mode = DIR_MODE
        info.size = 0
    else:
        info.type = tarfile.REGTYPE
        info.mode = FILE_MODE
        info.size = path.stat().st_size
    return info


def write_tar(root: Path, fileobj: BinaryIO) -> None:
    """Write the contents of root as a deterministic tar stream to fileobj."""
    root = Path(root)
    if not root.is_dir():
        raise FormatError("Cannot archive a non-directory", root)

    # walk fully first so a depth failure never leaves a partial stream
    entries = list(iter_entries(root))
    with tarfile.open(fileobj=fileobj, mode="w", format=TAR_FORMAT) as tar:
        for path, arcname in entries:
            info = _make_tarinfo(path, arcname)
            if info.isdir():
                tar.addfile(info)
            else:
                with open(path, "rb") as f:
                    tar.addfile(info, f)


def encode(root: Union[str, Path]) -> bytes:
    """Encode a directory tree into tar bytes.

    Args:
        root: Directory to archive; member names are relative to it

    Returns:
        Tar stream bytes. Equal trees always give equal bytes.
    """
    buffer = io.BytesIO()
    write_tar(Path(root), buffer)
    return buffer.getvalue()


def pack_tar(root: Union[str, Path], tar_path: Union[str, Path]) -> str:
    """Encode a directory tree into a tar file.

    Returns:
        Hex sha256 digest of the written tar file
    """
    tar_path = Path(tar_path)
    log.debug("codec.pack_tar", root=str(root), tar=str(tar_path))
    with open(tar_path, "wb") as f:
        write_tar(Path(root), f)
    return calculate_file_digest(tar_path)


def _check_member_name(name: str) -> None:
    path = Path(name)
    if path.is_absolute() or ".." in path.parts:
        raise FormatError("Unsafe member name inside tar", name)


def read_tar(fileobj: BinaryIO, dest: Path) -> None:
    """Extract a tar stream into dest, refusing unsafe members."""
    dest = Path(dest)
    try:
        with tarfile.open(fileobj=fileobj, mode="r:") as tar:
            members = tar.getmembers()
            for member in members:
                _check_member_name(member.name)
            tar.extractall(dest, members=members, filter="data")
    except tarfile.TarError as e:
        raise FormatError(f"Failed to extract tar: {e}", dest) from e


def decode(tar_bytes: bytes, dest: Union[str, Path]) -> None:
    """Decode tar bytes into the directory dest."""
    read_tar(io.BytesIO(tar_bytes), Path(dest))


def unpack_tar(tar_path: Union[str, Path], dest: Union[str, Path]) -> None:
    """Extract a tar file into the directory dest."""
    log.debug("codec.unpack_tar", tar=str(tar_path), dest=str(dest))
    with open(tar_path, "rb") as f:
        read_tar(f, Path(dest))


def copy_stream(src: BinaryIO, dst: BinaryIO, size: int) -> None:
    """Copy exactly size bytes from src to dst."""
    remaining = size
    while remaining > 0:
        chunk = src.read(min(_COPY_BUFSIZE, remaining))
        if not chunk:
            raise FormatError("Unexpected end of tar member data")
        dst.write(chunk)
        remaining -= len(chunk)
