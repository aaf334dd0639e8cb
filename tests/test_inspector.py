"""Tests for docker image archive inspection."""

import json

import pytest

from layer_splitter.exceptions import DigestMismatchError, FormatError
from layer_splitter.tar.inspector import (
    DockerArchiveInspector,
    get_diff_ids,
    inspect_image,
    is_config_name,
    is_layer_name,
)
from layer_splitter.tar.models import CONFIG_ROLE, MANIFEST_ROLE, REPOSITORIES_ROLE
from tests.helpers import build_image_dir, replace_config, write_manifest


def test_inspect_valid_image(image):
    """Test the role map and the layer order of a valid image."""
    layout = inspect_image(image.root)

    assert layout.config_path == image.config_path
    assert layout.manifest_path == image.root / "manifest.json"
    assert layout.repositories_path == image.root / "repositories"
    assert set(layout.roles) == {CONFIG_ROLE, MANIFEST_ROLE, REPOSITORIES_ROLE}
    assert layout.layers == [image.root / lid for lid in image.layer_ids]
    assert layout.layer_count == 5


def test_inspect_is_idempotent(image):
    inspector = DockerArchiveInspector()
    assert inspector.inspect(image.root) == inspector.inspect(image.root)


def test_layer_order_follows_manifest(image):
    """Test layers come back in manifest order, not directory name order."""
    reordered = list(reversed(image.layer_ids))
    write_manifest(image.root, image.config_name, [f"{lid}/layer.tar" for lid in reordered])

    layout = inspect_image(image.root)
    assert [p.name for p in layout.layers] == reordered


def test_unknown_top_level_entry_is_tolerated(image):
    (image.root / "README").write_text("hello")
    assert inspect_image(image.root).layer_count == 5


def test_name_patterns():
    assert is_config_name("a" * 64 + ".json")
    assert not is_config_name("a" * 63 + ".json")
    assert is_layer_name("0" * 64)
    assert not is_layer_name("0" * 64 + ".json")


def test_missing_config(image):
    image.config_path.unlink()
    with pytest.raises(FormatError, match="No config document"):
        inspect_image(image.root)


def test_two_configs(image):
    (image.root / ("f" * 64 + ".json")).write_text("{}")
    with pytest.raises(FormatError, match="More than one config"):
        inspect_image(image.root)


@pytest.mark.parametrize("name", ["manifest.json", "repositories"])
def test_missing_required_file(image, name):
    (image.root / name).unlink()
    with pytest.raises(FormatError, match=f"No {name} found"):
        inspect_image(image.root)


def test_config_digest_mismatch(image):
    content = image.config_path.read_bytes()
    image.config_path.write_bytes(content.replace(b"amd64", b"arm64"))

    with pytest.raises(DigestMismatchError) as exc_info:
        inspect_image(image.root)
    assert exc_info.value.expected == image.config_name[: -len(".json")]


def test_diff_id_without_prefix(image):
    replace_config(image, image.diff_ids, prefix="")
    with pytest.raises(FormatError, match="Bad 'diff_id' prefix"):
        inspect_image(image.root)


def test_get_diff_ids_requires_rootfs():
    with pytest.raises(FormatError, match="rootfs"):
        get_diff_ids({"os": "linux"})
    assert get_diff_ids({"rootfs": {"diff_ids": ["sha256:x"]}}) == ["sha256:x"]


def test_layer_count_mismatch(image):
    replace_config(image, image.diff_ids[:-1])
    with pytest.raises(FormatError, match="Layer number 5 is different from 4"):
        inspect_image(image.root)


def test_layer_tar_digest_mismatch(image):
    (image.layer_dir(2) / "layer.tar").write_bytes(b"replaced layer")
    with pytest.raises(FormatError, match="differ from diff_ids"):
        inspect_image(image.root)


def test_unexpected_file_in_layer(image):
    (image.layer_dir(0) / "extra").write_text("x")
    with pytest.raises(FormatError, match="Unrecognized file 'extra'"):
        inspect_image(image.root)


@pytest.mark.parametrize("member", ["json", "layer.tar"])
def test_missing_layer_member(image, member):
    (image.layer_dir(1) / member).unlink()
    with pytest.raises(FormatError, match=f"No {member} inside layer"):
        inspect_image(image.root)


def test_missing_parent_layer(image):
    json_path = image.layer_dir(1) / "json"
    data = json.loads(json_path.read_text())
    data["parent"] = "e" * 64
    json_path.write_text(json.dumps(data))

    with pytest.raises(FormatError, match="does not exist"):
        inspect_image(image.root)


def test_layer_entry_not_a_directory(tmp_path):
    image = build_image_dir(tmp_path / "image", layer_count=1)
    (tmp_path / "image" / ("d" * 64)).write_text("not a layer")
    with pytest.raises(FormatError, match="not a directory"):
        inspect_image(image.root)


def test_manifest_with_two_entries(image):
    entry = json.loads((image.root / "manifest.json").read_text())[0]
    (image.root / "manifest.json").write_text(json.dumps([entry, entry]))
    with pytest.raises(FormatError, match="2 entries rather than 1"):
        inspect_image(image.root)


def test_manifest_config_mismatch(image):
    other = "c" * 64 + ".json"
    (image.root / "manifest.json").write_text(
        json.dumps([{"Config": other, "Layers": [f"{lid}/layer.tar" for lid in image.layer_ids]}])
    )
    with pytest.raises(FormatError, match="differs from"):
        inspect_image(image.root)


def test_manifest_references_unknown_layer(image):
    layers = [f"{lid}/layer.tar" for lid in image.layer_ids[:-1]] + [f"{'9' * 64}/layer.tar"]
    write_manifest(image.root, image.config_name, layers)
    with pytest.raises(FormatError, match="doesn't exist"):
        inspect_image(image.root)


def test_manifest_leaves_layer_unreferenced(image):
    layers = [f"{lid}/layer.tar" for lid in image.layer_ids[:-1]]
    write_manifest(image.root, image.config_name, layers)
    with pytest.raises(FormatError, match="not referenced by manifest"):
        inspect_image(image.root)


def test_manifest_not_json(image):
    (image.root / "manifest.json").write_text("{broken")
    with pytest.raises(FormatError, match="Invalid JSON"):
        inspect_image(image.root)
