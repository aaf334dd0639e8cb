"""Tests for the deterministic tar codec and the commented gzip wrapper."""

import gzip
import io
import tarfile

import pytest

from layer_splitter.exceptions import DepthExceededError, DigestMismatchError, FormatError
from layer_splitter.tar.codec import decode, encode, pack_tar, unpack_tar
from layer_splitter.tar.compress import (
    GzipCommentWriter,
    decode_gz,
    encode_gz,
    pack_gz,
    read_gzip_header,
    unpack_gz,
)
from layer_splitter.utils.digest import calculate_digest, calculate_file_digest


def make_tree(root):
    (root / "layer_b").mkdir(parents=True)
    (root / "layer_a").mkdir()
    (root / "layer_b" / "layer.tar").write_bytes(b"b" * 700)
    (root / "layer_a" / "json").write_text('{"id": "a"}')
    (root / "manifest.json").write_text("[]")
    return root


def gz_with_comment(member_name: str, payload: bytes, comment: str) -> bytes:
    out = io.BytesIO()
    with GzipCommentWriter(out, comment) as writer:
        with tarfile.open(fileobj=writer, mode="w") as tar:
            info = tarfile.TarInfo(member_name)
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))
    return out.getvalue()


def test_encode_is_deterministic(tmp_path):
    """Test equal trees encode to equal bytes regardless of timestamps."""
    first = make_tree(tmp_path / "first")
    second = make_tree(tmp_path / "second")
    (second / "manifest.json").touch()

    assert encode(first) == encode(second)


def test_encode_member_names_and_headers(tmp_path):
    root = make_tree(tmp_path / "tree")

    with tarfile.open(fileobj=io.BytesIO(encode(root))) as tar:
        members = tar.getmembers()

    assert [m.name for m in members] == [
        "layer_a",
        "layer_a/json",
        "layer_b",
        "layer_b/layer.tar",
        "manifest.json",
    ]
    for member in members:
        assert member.mtime == 0
        assert member.uid == member.gid == 0
        assert member.uname == member.gname == ""
        assert member.mode == (0o755 if member.isdir() else 0o644)


def test_encode_empty_directory(tmp_path):
    root = tmp_path / "empty"
    root.mkdir()
    with tarfile.open(fileobj=io.BytesIO(encode(root))) as tar:
        assert tar.getmembers() == []


def test_encode_rejects_deep_nesting(tmp_path):
    root = make_tree(tmp_path / "tree")
    (root / "layer_a" / "nested").mkdir()
    (root / "layer_a" / "nested" / "deep").write_text("x")

    with pytest.raises(DepthExceededError) as exc_info:
        encode(root)
    assert exc_info.value.depth == 3


def test_decode_roundtrip(tmp_path):
    root = make_tree(tmp_path / "tree")
    dest = tmp_path / "dest"
    dest.mkdir()

    decode(encode(root), dest)

    assert (dest / "layer_b" / "layer.tar").read_bytes() == b"b" * 700
    assert encode(dest) == encode(root)


def test_pack_and_unpack_tar(tmp_path):
    root = make_tree(tmp_path / "tree")
    tar_path = tmp_path / "tree.tar"

    digest = pack_tar(root, tar_path)
    assert digest == calculate_file_digest(tar_path)

    dest = tmp_path / "dest"
    dest.mkdir()
    unpack_tar(tar_path, dest)
    assert (dest / "manifest.json").read_text() == "[]"


def test_decode_rejects_unsafe_member(tmp_path):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        info = tarfile.TarInfo("../escape")
        info.size = 1
        tar.addfile(info, io.BytesIO(b"x"))

    with pytest.raises(FormatError, match="Unsafe member"):
        decode(buffer.getvalue(), tmp_path)


def test_decode_rejects_garbage(tmp_path):
    with pytest.raises(FormatError, match="Failed to extract"):
        decode(b"definitely not a tar" * 40, tmp_path)


def test_gz_header_carries_inner_digest():
    tar_bytes = b"inner tar bytes" * 100
    gz_bytes = encode_gz(tar_bytes, "os.tar", level=9)

    assert gz_bytes[:2] == b"\x1f\x8b"
    assert gz_bytes[3] == 0x10
    assert gz_bytes[4:8] == b"\x00\x00\x00\x00"
    assert gz_bytes[8] == 2
    assert gz_bytes[9] == 255
    assert read_gzip_header(io.BytesIO(gz_bytes)) == calculate_digest(tar_bytes)


def test_gz_is_readable_by_stdlib():
    """Test split archives stay ordinary gzip-compressed tars."""
    tar_bytes = b"payload" * 50
    outer = gzip.decompress(encode_gz(tar_bytes, "app.tar", level=1))

    with tarfile.open(fileobj=io.BytesIO(outer)) as tar:
        (member,) = tar.getmembers()
        assert member.name == "app.tar"
        extracted = tar.extractfile(member)
        assert extracted is not None
        assert extracted.read() == tar_bytes


def test_gz_roundtrip_and_determinism():
    tar_bytes = b"abc" * 1000
    gz_bytes = encode_gz(tar_bytes, "lib.tar")

    assert encode_gz(tar_bytes, "lib.tar") == gz_bytes
    assert decode_gz(gz_bytes) == ("lib.tar", tar_bytes)


@pytest.mark.parametrize("level", [0, 1, 6, 9])
def test_gz_levels(level):
    assert decode_gz(encode_gz(b"layer" * 200, "os.tar", level))[1] == b"layer" * 200


def test_gz_invalid_level():
    with pytest.raises(ValueError, match="between 0 to 9"):
        encode_gz(b"x", "os.tar", level=10)


def test_gz_digest_mismatch():
    payload = b"tampered payload"
    gz_bytes = gz_with_comment("os.tar", payload, calculate_digest(b"original payload"))

    with pytest.raises(DigestMismatchError) as exc_info:
        decode_gz(gz_bytes)
    assert exc_info.value.actual == calculate_digest(payload)


def test_gz_without_comment():
    plain = gzip.compress(b"anything")
    with pytest.raises(FormatError, match="no checksum comment"):
        decode_gz(plain)


def test_gz_comment_not_a_digest():
    with pytest.raises(FormatError, match="not a sha256 digest"):
        decode_gz(gz_with_comment("os.tar", b"x", "hello"))


def test_gz_trailing_member():
    gz_bytes = encode_gz(b"x" * 10, "os.tar") + gzip.compress(b"extra")
    with pytest.raises(FormatError, match="more than one member"):
        decode_gz(gz_bytes)


def test_gz_truncated():
    gz_bytes = encode_gz(b"x" * 5000, "os.tar")
    with pytest.raises(FormatError):
        decode_gz(gz_bytes[:-12])


def test_gz_requires_single_tar_member():
    out = io.BytesIO()
    with GzipCommentWriter(out, calculate_digest(b"a")) as writer:
        with tarfile.open(fileobj=writer, mode="w") as tar:
            for name in ("a.tar", "b.tar"):
                info = tarfile.TarInfo(name)
                info.size = 1
                tar.addfile(info, io.BytesIO(b"a"))

    with pytest.raises(FormatError, match="2 members"):
        decode_gz(out.getvalue())


def test_gz_member_needs_tar_extension():
    with pytest.raises(FormatError, match="extension 'tar'"):
        decode_gz(gz_with_comment("os.zip", b"a", calculate_digest(b"a")))


def test_pack_and_unpack_gz(tmp_path):
    tar_path = tmp_path / "os.tar"
    tar_path.write_bytes(b"split tar" * 300)
    gz_path = tmp_path / "os.tar.gz"

    digest = pack_gz(tar_path, gz_path, level=9)
    assert digest == calculate_file_digest(tar_path)

    dest = tmp_path / "dest"
    dest.mkdir()
    extracted = unpack_gz(gz_path, dest)
    assert extracted == dest / "os.tar"
    assert extracted.read_bytes() == tar_path.read_bytes()


def test_unpack_gz_rejects_duplicate_member(tmp_path):
    tar_path = tmp_path / "os.tar"
    tar_path.write_bytes(b"split tar")
    gz_path = tmp_path / "os.tar.gz"
    pack_gz(tar_path, gz_path)

    dest = tmp_path / "dest"
    dest.mkdir()
    unpack_gz(gz_path, dest)
    with pytest.raises(FormatError, match="same member"):
        unpack_gz(gz_path, dest)


def test_unpack_gz_digest_mismatch(tmp_path):
    gz_path = tmp_path / "os.tar.gz"
    gz_path.write_bytes(gz_with_comment("os.tar", b"new", calculate_digest(b"old")))

    dest = tmp_path / "dest"
    dest.mkdir()
    with pytest.raises(DigestMismatchError):
        unpack_gz(gz_path, dest)
