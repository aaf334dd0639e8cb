"""Test configuration and fixtures."""

import pytest

from tests.helpers import SyntheticImage, build_image_dir, pack_image_tar


@pytest.fixture
def image(tmp_path) -> SyntheticImage:
    """A valid five layer image extracted on disk."""
    return build_image_dir(tmp_path / "image", layer_count=5)


@pytest.fixture
def image_tar(tmp_path, image):
    """The five layer image packed as a `docker save` tar."""
    return pack_image_tar(image.root, tmp_path / "image.tar")


@pytest.fixture
def out_dir(tmp_path):
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def work_dir(tmp_path):
    """Working directory path; created and removed by the operations."""
    return tmp_path / "work"
