"""Data models for image archive handling."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

CONFIG_ROLE = "config"
MANIFEST_ROLE = "manifest"
REPOSITORIES_ROLE = "repositories"

ROLE_NAMES = (CONFIG_ROLE, MANIFEST_ROLE, REPOSITORIES_ROLE)

MANIFEST_FILENAME = "manifest.json"
REPOSITORIES_FILENAME = "repositories"

LAYER_JSON = "json"
LAYER_TAR = "layer.tar"
LAYER_VERSION = "VERSION"

LAYER_MEMBERS = frozenset({LAYER_JSON, LAYER_TAR, LAYER_VERSION})


@dataclass
class ImageLayout:
    """Validated layout of an extracted image archive.

    Attributes:
        roles: Paths of the well-known files, keyed by role name
        layers: Layer directories in manifest order
    """

    roles: Dict[str, Path]
    layers: List[Path] = field(default_factory=list)

    @property
    def config_path(self) -> Path:
        return self.roles[CONFIG_ROLE]

    @property
    def manifest_path(self) -> Path:
        return self.roles[MANIFEST_ROLE]

    @property
    def repositories_path(self) -> Path:
        return self.roles[REPOSITORIES_ROLE]

    @property
    def layer_count(self) -> int:
        return len(self.layers)
