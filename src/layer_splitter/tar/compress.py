"""Gzip packing of split archives with an embedded checksum comment.

A split file ``<name>.tar.gz`` is a gzip stream holding an outer tar whose
single member is ``<name>.tar``. The gzip header's comment field (FCOMMENT)
carries the hex sha256 of that inner tar, so a damaged or substituted split
is detected before its contents are trusted.

The standard gzip module neither writes nor exposes the comment field, so
the gzip framing (RFC 1952) is handled here on top of zlib.
"""

import io
import struct
import tarfile
import tempfile
import zlib
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

from ..core.logging import log
from ..exceptions import DigestMismatchError, FormatError
from ..utils.digest import calculate_digest, calculate_file_digest, validate_digest
from .codec import DETERMINISTIC_MTIME, FILE_MODE, TAR_FORMAT, copy_stream

GZIP_MAGIC = b"\x1f\x8b"
GZIP_DEFLATE = 8

FTEXT = 0x01
FHCRC = 0x02
FEXTRA = 0x04
FNAME = 0x08
FCOMMENT = 0x10
RESERVED_FLAGS = 0xE0

OS_UNKNOWN = 255

DEFAULT_LEVEL = 6

_CHUNK_SIZE = 1024 * 1024
_SPOOL_SIZE = 16 * 1024 * 1024


def _extra_flags(level: int) -> int:
    if level == 9:
        return 2
    if level == 1:
        return 4
    return 0


def build_gzip_header(comment: str, level: int) -> bytes:
    """Build a deterministic gzip member header carrying comment."""
    try:
        encoded = comment.encode("latin-1")
    except UnicodeEncodeError as e:
        raise ValueError(f"Gzip comment must be latin-1 text: {comment!r}") from e
    if b"\x00" in encoded:
        raise ValueError("Gzip comment cannot contain NUL bytes")
    return (
        GZIP_MAGIC
        + bytes([GZIP_DEFLATE, FCOMMENT])
        + struct.pack("<I", DETERMINISTIC_MTIME)
        + bytes([_extra_flags(level), OS_UNKNOWN])
        + encoded
        + b"\x00"
    )


class GzipCommentWriter(io.RawIOBase):
    """Write-only file object producing a single-member gzip stream."""

    def __init__(self, fileobj: BinaryIO, comment: str, level: int = DEFAULT_LEVEL) -> None:
        super().__init__()
        if not 0 <= level <= 9:
            raise ValueError(f"Compress level {level} is not between 0 to 9")
        self._fileobj = fileobj
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, -zlib.MAX_WBITS)
        self._crc = 0
        self._size = 0
        self._fileobj.write(build_gzip_header(comment, level))

    def writable(self) -> bool:
        return True

    def tell(self) -> int:
        # tarfile records its start offset; report uncompressed bytes written
        return self._size

    def write(self, data) -> int:  # type: ignore[override]
        data = bytes(data)
        self._crc = zlib.crc32(data, self._crc)
        self._size += len(data)
        self._fileobj.write(self._compressor.compress(data))
        return len(data)

    def close(self) -> None:
        if not self.closed:
            self._fileobj.write(self._compressor.flush())
            self._fileobj.write(
                struct.pack("<II", self._crc & 0xFFFFFFFF, self._size & 0xFFFFFFFF)
            )
        super().close()


def _member_info(member_name: str, size: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(member_name)
    info.size = size
    info.mtime = DETERMINISTIC_MTIME
    info.mode = FILE_MODE
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _write_wrapped(
    out: BinaryIO, member_name: str, src: BinaryIO, size: int, digest: str, level: int
) -> None:
    writer = GzipCommentWriter(out, digest, level)
    with writer:
        with tarfile.open(fileobj=writer, mode="w", format=TAR_FORMAT) as tar:
            tar.addfile(_member_info(member_name, size), src)


def encode_gz(tar_bytes: bytes, member_name: str, level: int = DEFAULT_LEVEL) -> bytes:
    """Wrap tar bytes as the single member of a gzip-compressed tar.

    Args:
        tar_bytes: Inner tar stream
        member_name: Name of the inner member, e.g. "os.tar"
        level: Compression level 0-9

    Returns:
        Gzip bytes whose header comment is the inner tar's hex digest
    """
    digest = calculate_digest(tar_bytes)
    out = io.BytesIO()
    _write_wrapped(out, member_name, io.BytesIO(tar_bytes), len(tar_bytes), digest, level)
    return out.getvalue()


def pack_gz(
    tar_path: Union[str, Path], gz_path: Union[str, Path], level: int = DEFAULT_LEVEL
) -> str:
    """Compress a tar file into gz_path, embedding its digest.

    Returns:
        Hex sha256 digest of the inner tar
    """
    tar_path = Path(tar_path)
    digest = calculate_file_digest(tar_path)
    size = tar_path.stat().st_size
    log.debug("codec.pack_gz", tar=str(tar_path), gz=str(gz_path), level=level)
    with open(tar_path, "rb") as src, open(gz_path, "wb") as out:
        _write_wrapped(out, tar_path.name, src, size, digest, level)
    return digest


def _read_exact(fileobj: BinaryIO, size: int) -> bytes:
    data = fileobj.read(size)
    if len(data) != size:
        raise FormatError("Truncated gzip header")
    return data


def _read_zero_terminated(fileobj: BinaryIO) -> bytes:
    chunks = bytearray()
    while True:
        byte = fileobj.read(1)
        if not byte:
            raise FormatError("Truncated gzip header")
        if byte == b"\x00":
            return bytes(chunks)
        chunks += byte


def read_gzip_header(fileobj: BinaryIO) -> Optional[str]:
    """Parse a gzip member header and return its comment, if any.

    Raises:
        FormatError: If the stream is not a gzip stream this codec understands
    """
    fixed = _read_exact(fileobj, 10)
    if fixed[:2] != GZIP_MAGIC:
        raise FormatError("Not a gzip stream")
    if fixed[2] != GZIP_DEFLATE:
        raise FormatError(f"Unsupported gzip compression method {fixed[2]}")
    flags = fixed[3]
    if flags & RESERVED_FLAGS:
        raise FormatError("Reserved gzip flags are set")

    if flags & FEXTRA:
        (xlen,) = struct.unpack("<H", _read_exact(fileobj, 2))
        _read_exact(fileobj, xlen)
    if flags & FNAME:
        _read_zero_terminated(fileobj)
    comment = None
    if flags & FCOMMENT:
        comment = _read_zero_terminated(fileobj).decode("latin-1")
    if flags & FHCRC:
        _read_exact(fileobj, 2)
    return comment


def inflate(src: BinaryIO, dst: BinaryIO) -> str:
    """Decompress one gzip member from src into dst.

    Returns:
        The header comment

    Raises:
        FormatError: On a missing comment, corrupt data, bad CRC or size,
            or anything following the first gzip member
    """
    comment = read_gzip_header(src)
    if comment is None:
        raise FormatError("Split archive has no checksum comment")

    decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
    crc = 0
    size = 0
    try:
        while not decompressor.eof:
            chunk = src.read(_CHUNK_SIZE)
            if not chunk:
                raise FormatError("Truncated gzip stream")
            data = decompressor.decompress(chunk)
            crc = zlib.crc32(data, crc)
            size += len(data)
            dst.write(data)
    except zlib.error as e:
        raise FormatError(f"Corrupt gzip stream: {e}") from e

    tail = decompressor.unused_data + src.read()
    if len(tail) < 8:
        raise FormatError("Truncated gzip trailer")
    stored_crc, stored_size = struct.unpack("<II", tail[:8])
    if stored_crc != crc & 0xFFFFFFFF or stored_size != size & 0xFFFFFFFF:
        raise FormatError("Gzip CRC or length check failed")
    if tail[8:]:
        raise FormatError("Gzip stream holds more than one member")
    return comment


def _open_single_member(tar: tarfile.TarFile) -> Tuple[tarfile.TarInfo, BinaryIO]:
    members = tar.getmembers()
    if len(members) != 1:
        raise FormatError(f"Split archive holds {len(members)} members rather than 1")
    member = members[0]
    name = member.name
    if not member.isfile() or "/" in name or "\\" in name or name in ("", ".", ".."):
        raise FormatError("Split archive member must be a plain file", name)
    if not name.endswith(".tar"):
        raise FormatError("Split archive member should have extension 'tar'", name)
    extracted = tar.extractfile(member)
    if extracted is None:
        raise FormatError("Could not extract split archive member", name)
    return member, extracted


def _check_comment(comment: str) -> str:
    if not validate_digest(comment):
        raise FormatError(f"Split archive comment is not a sha256 digest: {comment!r}")
    return comment


def decode_gz(gz_bytes: bytes) -> Tuple[str, bytes]:
    """Decode a split archive produced by :func:`encode_gz`.

    Returns:
        (inner member name, inner tar bytes)

    Raises:
        FormatError: If the stream or the wrapped tar is malformed
        DigestMismatchError: If the inner tar does not match the comment
    """
    outer = io.BytesIO()
    expected = _check_comment(inflate(io.BytesIO(gz_bytes), outer))
    outer.seek(0)
    try:
        with tarfile.open(fileobj=outer, mode="r:") as tar:
            member, extracted = _open_single_member(tar)
            tar_bytes = extracted.read()
    except tarfile.TarError as e:
        raise FormatError(f"Split archive does not hold a tar: {e}") from e

    actual = calculate_digest(tar_bytes)
    if actual != expected:
        raise DigestMismatchError(expected, actual, member.name)
    return member.name, tar_bytes


def unpack_gz(gz_path: Union[str, Path], dest_dir: Union[str, Path]) -> Path:
    """Decode a split archive file, writing its inner tar into dest_dir.

    Returns:
        Path of the extracted inner tar

    Raises:
        FormatError: If the file or the wrapped tar is malformed
        DigestMismatchError: If the inner tar does not match the comment
    """
    gz_path = Path(gz_path)
    dest_dir = Path(dest_dir)
    log.debug("codec.unpack_gz", gz=str(gz_path), dest=str(dest_dir))

    with open(gz_path, "rb") as src, tempfile.SpooledTemporaryFile(
        max_size=_SPOOL_SIZE, dir=dest_dir
    ) as outer:
        try:
            expected = _check_comment(inflate(src, outer))
        except FormatError as e:
            raise FormatError(f"{e}", gz_path) from e
        outer.seek(0)
        try:
            with tarfile.open(fileobj=outer, mode="r:") as tar:
                member, extracted = _open_single_member(tar)
                target = dest_dir / member.name
                if target.exists():
                    raise FormatError("Two split archives hold the same member", member.name)
                with open(target, "wb") as out:
                    copy_stream(extracted, out, member.size)
        except tarfile.TarError as e:
            raise FormatError(f"Split archive does not hold a tar: {e}", gz_path) from e

    actual = calculate_file_digest(target)
    if actual != expected:
        raise DigestMismatchError(expected, actual, gz_path)
    return target
