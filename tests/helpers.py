"""Helpers building synthetic docker image archives for tests."""

import hashlib
import io
import json
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from layer_splitter.tar.codec import decode, encode
from layer_splitter.tar.compress import decode_gz, encode_gz


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def make_layer_tar(index: int) -> bytes:
    """Create a small filesystem-diff tar for layer index."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        payload = f"content of layer {index}\n".encode() * (index + 1)
        info = tarfile.TarInfo(f"opt/layer{index}.txt")
        info.size = len(payload)
        tar.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


@dataclass
class SyntheticImage:
    """A synthetic image extracted on disk."""

    root: Path
    config_name: str
    layer_ids: List[str]
    diff_ids: List[str]

    @property
    def config_path(self) -> Path:
        return self.root / self.config_name

    def layer_dir(self, position: int) -> Path:
        return self.root / self.layer_ids[position]


def build_image_dir(
    root: Path, layer_count: int = 5, repo: str = "test/app", tag: str = "latest"
) -> SyntheticImage:
    """Write a valid `docker save` style image into root."""
    root.mkdir(parents=True, exist_ok=True)

    layer_ids: List[str] = []
    diff_ids: List[str] = []
    parent: Optional[str] = None
    for index in range(layer_count):
        layer_tar = make_layer_tar(index)
        diff_id = sha256(layer_tar)
        layer_id = sha256(f"{parent or ''}\n{diff_id}".encode())

        layer_dir = root / layer_id
        layer_dir.mkdir()
        (layer_dir / "layer.tar").write_bytes(layer_tar)
        (layer_dir / "VERSION").write_text("1.0")
        layer_json: Dict[str, Any] = {"id": layer_id, "created": "2024-01-01T00:00:00Z"}
        if parent is not None:
            layer_json["parent"] = parent
        (layer_dir / "json").write_text(json.dumps(layer_json))

        layer_ids.append(layer_id)
        diff_ids.append(diff_id)
        parent = layer_id

    config_name = write_config(root, diff_ids)
    write_manifest(root, config_name, [f"{lid}/layer.tar" for lid in layer_ids], repo, tag)
    (root / "repositories").write_text(json.dumps({repo: {tag: layer_ids[-1]}}))
    return SyntheticImage(root, config_name, layer_ids, diff_ids)


def write_config(root: Path, diff_ids: List[str], prefix: str = "sha256:") -> str:
    """Write a config document named after its own digest."""
    config = {
        "architecture": "amd64",
        "os": "linux",
        "config": {"Cmd": ["/bin/sh"]},
        "rootfs": {"type": "layers", "diff_ids": [f"{prefix}{d}" for d in diff_ids]},
    }
    content = json.dumps(config).encode()
    config_name = f"{sha256(content)}.json"
    (root / config_name).write_bytes(content)
    return config_name


def write_manifest(
    root: Path,
    config_name: str,
    layers: List[str],
    repo: str = "test/app",
    tag: str = "latest",
) -> None:
    manifest = [{"Config": config_name, "RepoTags": [f"{repo}:{tag}"], "Layers": layers}]
    (root / "manifest.json").write_text(json.dumps(manifest))


def replace_config(image: SyntheticImage, diff_ids: List[str], prefix: str = "sha256:") -> None:
    """Swap the config document, keeping its name consistent and the manifest in sync."""
    image.config_path.unlink()
    image.config_name = write_config(image.root, diff_ids, prefix)
    write_manifest(image.root, image.config_name, [f"{lid}/layer.tar" for lid in image.layer_ids])


def pack_image_tar(src_dir: Path, tar_path: Path) -> Path:
    """Pack an extracted image into a tar the way `docker save` lays it out."""
    with tarfile.open(tar_path, "w") as tar:
        for entry in sorted(src_dir.iterdir()):
            tar.add(entry, arcname=entry.name)
    return tar_path


def read_tar_files(tar_path: Path) -> Dict[str, bytes]:
    """Map every regular file member of a tar to its bytes."""
    contents = {}
    with tarfile.open(tar_path, "r") as tar:
        for member in tar.getmembers():
            if member.isfile():
                extracted = tar.extractfile(member)
                assert extracted is not None
                contents[member.name.removeprefix("./")] = extracted.read()
    return contents


def repack_split(gz_path: Path, scratch: Path, edit: Callable[[Path], None]) -> None:
    """Re-pack a split after editing its extracted directory, keeping the checksum comment consistent."""
    member_name, tar_bytes = decode_gz(gz_path.read_bytes())
    split_dir = scratch / member_name
    split_dir.mkdir(parents=True)
    decode(tar_bytes, split_dir)
    edit(split_dir)
    gz_path.write_bytes(encode_gz(encode(split_dir), member_name))


def rewrite_split(gz_path: Path, scratch: Path, mutate: Callable[[dict], None]) -> None:
    """Re-pack a split with mutated metadata."""

    def edit(split_dir: Path) -> None:
        metadata_path = split_dir / "split_metadata.json"
        metadata = json.loads(metadata_path.read_text())
        mutate(metadata)
        metadata_path.write_text(json.dumps(metadata))

    repack_split(gz_path, scratch, edit)


def read_split_metadata(gz_path: Path, scratch: Path) -> dict:
    member_name, tar_bytes = decode_gz(gz_path.read_bytes())
    split_dir = scratch / f"read-{member_name}"
    split_dir.mkdir(parents=True)
    decode(tar_bytes, split_dir)
    return json.loads((split_dir / "split_metadata.json").read_text())
