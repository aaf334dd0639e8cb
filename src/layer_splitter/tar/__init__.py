"""Image archive codec and inspection."""

from .codec import decode, encode, pack_tar, unpack_tar
from .compress import decode_gz, encode_gz, pack_gz, unpack_gz
from .inspector import DockerArchiveInspector, Inspector, inspect_image
from .models import ImageLayout

__all__ = [
    "DockerArchiveInspector",
    "ImageLayout",
    "Inspector",
    "decode",
    "decode_gz",
    "encode",
    "encode_gz",
    "inspect_image",
    "pack_gz",
    "pack_tar",
    "unpack_gz",
    "unpack_tar",
]
