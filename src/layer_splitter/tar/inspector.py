"""Structural validation of extracted docker image archives."""

import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Set, Tuple, Union

from ..core.logging import log
from ..exceptions import DigestMismatchError, FormatError
from ..utils.digest import DIGEST_PREFIX, calculate_file_digest, strip_digest_prefix
from .models import (
    CONFIG_ROLE,
    LAYER_JSON,
    LAYER_MEMBERS,
    LAYER_TAR,
    MANIFEST_FILENAME,
    MANIFEST_ROLE,
    REPOSITORIES_FILENAME,
    REPOSITORIES_ROLE,
    ImageLayout,
)

CONFIG_NAME_PATTERN = re.compile(r"^[a-f0-9]{64}\.json$")
LAYER_NAME_PATTERN = re.compile(r"^[a-f0-9]{64}$")


def load_json_file(path: Path) -> Any:
    """Parse a JSON document from an extracted archive.

    Raises:
        FormatError: If the file cannot be read or parsed
    """
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise FormatError(f"Cannot read JSON file: {e}", path) from e
    except json.JSONDecodeError as e:
        raise FormatError(f"Invalid JSON: {e}", path) from e


def is_config_name(name: str) -> bool:
    """Check if an entry name looks like '<64 hex>.json'."""
    return bool(CONFIG_NAME_PATTERN.match(name))


def is_layer_name(name: str) -> bool:
    """Check if an entry name is a bare 64 hex digest."""
    return bool(LAYER_NAME_PATTERN.match(name))


def get_diff_ids(config_data: Any) -> List[str]:
    """Extract rootfs.diff_ids from a parsed config document."""
    if not isinstance(config_data, dict):
        raise FormatError("Config document must be a JSON object")
    rootfs = config_data.get("rootfs")
    if not isinstance(rootfs, dict):
        raise FormatError("Config document has no 'rootfs' object")
    diff_ids = rootfs.get("diff_ids")
    if not isinstance(diff_ids, list):
        raise FormatError("Config document has no 'rootfs.diff_ids' array")
    return diff_ids


def get_layer_parent(layer_data: Any, layer_dir: Path) -> str:
    """Return the parent layer id from a layer's json, or '' when absent."""
    if not isinstance(layer_data, dict):
        raise FormatError("Bad json inside layer", layer_dir)
    parent = layer_data.get("parent")
    if parent is None:
        return ""
    if not isinstance(parent, str):
        raise FormatError(f"Bad 'parent' value {parent!r} inside layer", layer_dir)
    return parent


class Inspector(ABC):
    """Validates an extracted image directory in four fail-fast stages."""

    def inspect(self, root: Union[str, Path]) -> ImageLayout:
        """Validate root and return its role map and ordered layer list.

        Raises:
            FormatError: If the layout is invalid
            DigestMismatchError: If the config does not match its claimed digest
        """
        root = Path(root)
        log.info("inspect.route", root=str(root))
        roles, layer_names = self.inspect_route(root)
        log.info("inspect.config", config=roles[CONFIG_ROLE].name)
        declared = self.inspect_config(roles)
        log.info("inspect.layers", count=len(layer_names))
        self.inspect_layers(root, layer_names, declared)
        log.info("inspect.manifest")
        layers = self.inspect_manifest(root, roles, layer_names)
        return ImageLayout(roles=roles, layers=layers)

    @abstractmethod
    def inspect_route(self, root: Path) -> Tuple[Dict[str, Path], Set[str]]:
        """Locate the well-known files and the candidate layer directories."""

    @abstractmethod
    def inspect_config(self, roles: Dict[str, Path]) -> Set[str]:
        """Verify the config document and return the declared layer digests."""

    @abstractmethod
    def inspect_layers(self, root: Path, layer_names: Set[str], declared: Set[str]) -> None:
        """Verify each layer directory against the declared digests."""

    @abstractmethod
    def inspect_manifest(
        self, root: Path, roles: Dict[str, Path], layer_names: Set[str]
    ) -> List[Path]:
        """Verify the manifest and return layer directories in manifest order."""


class DockerArchiveInspector(Inspector):
    """Inspector for `docker save` archives with one image."""

    def inspect_route(self, root: Path) -> Tuple[Dict[str, Path], Set[str]]:
        if not root.is_dir():
            raise FormatError("Extracted image is not a directory", root)

        config_paths: List[Path] = []
        layer_names: Set[str] = set()
        manifest_path = None
        repositories_path = None

        for entry in sorted(root.iterdir(), key=lambda p: p.name):
            name = entry.name
            if is_config_name(name):
                config_paths.append(entry)
            elif is_layer_name(name):
                if not entry.is_dir():
                    raise FormatError("Layer entry is not a directory", entry)
                layer_names.add(name)
            elif name == MANIFEST_FILENAME:
                manifest_path = entry
            elif name == REPOSITORIES_FILENAME:
                repositories_path = entry
            else:
                log.warning("inspect.unrecognized_entry", path=str(entry))

        if not config_paths:
            raise FormatError("No config document found", root)
        if len(config_paths) > 1:
            names = ", ".join(p.name for p in config_paths)
            raise FormatError(f"More than one config document ({names})", root)
        if not config_paths[0].is_file():
            raise FormatError("Config document is not a file", config_paths[0])
        if manifest_path is None or not manifest_path.is_file():
            raise FormatError(f"No {MANIFEST_FILENAME} found", root)
        if repositories_path is None or not repositories_path.is_file():
            raise FormatError(f"No {REPOSITORIES_FILENAME} found", root)

        roles = {
            CONFIG_ROLE: config_paths[0],
            MANIFEST_ROLE: manifest_path,
            REPOSITORIES_ROLE: repositories_path,
        }
        return roles, layer_names

    def inspect_config(self, roles: Dict[str, Path]) -> Set[str]:
        config_path = roles[CONFIG_ROLE]

        claimed = config_path.name[: -len(".json")]
        actual = calculate_file_digest(config_path)
        if claimed != actual:
            raise DigestMismatchError(claimed, actual, config_path)

        declared: Set[str] = set()
        for diff_id in get_diff_ids(load_json_file(config_path)):
            if not isinstance(diff_id, str):
                raise FormatError(f"Bad 'diff_id' entry {diff_id!r} inside config", config_path)
            try:
                declared.add(strip_digest_prefix(diff_id))
            except ValueError as e:
                raise FormatError(
                    f"Bad 'diff_id' prefix inside config, expected '{DIGEST_PREFIX}': {diff_id!r}",
                    config_path,
                ) from e
        return declared

    def inspect_layers(self, root: Path, layer_names: Set[str], declared: Set[str]) -> None:
        if len(layer_names) != len(declared):
            raise FormatError(
                f"Layer number {len(layer_names)} is different from "
                f"{len(declared)} declared inside config",
                root,
            )

        found: Set[str] = set()
        for name in sorted(layer_names):
            layer_dir = root / name
            for member in sorted(os.listdir(layer_dir)):
                if member not in LAYER_MEMBERS:
                    raise FormatError(f"Unrecognized file '{member}' inside layer", layer_dir)

            json_path = layer_dir / LAYER_JSON
            if not json_path.is_file():
                raise FormatError("No json inside layer", layer_dir)
            parent = get_layer_parent(load_json_file(json_path), layer_dir)
            if parent and parent not in layer_names:
                raise FormatError(f"Parent layer '{parent}' does not exist", layer_dir)

            tar_path = layer_dir / LAYER_TAR
            if not tar_path.is_file():
                raise FormatError(f"No {LAYER_TAR} inside layer", layer_dir)
            found.add(calculate_file_digest(tar_path))

        mismatched = sorted(declared.symmetric_difference(found))
        if mismatched:
            raise FormatError(
                f"Some {LAYER_TAR} digests differ from diff_ids inside config: {mismatched}",
                root,
            )

    def inspect_manifest(
        self, root: Path, roles: Dict[str, Path], layer_names: Set[str]
    ) -> List[Path]:
        manifest_path = roles[MANIFEST_ROLE]
        manifest_data = load_json_file(manifest_path)
        if not isinstance(manifest_data, list):
            raise FormatError("Manifest must be a JSON array", manifest_path)
        if len(manifest_data) != 1:
            raise FormatError(
                f"Manifest has {len(manifest_data)} entries rather than 1", manifest_path
            )
        entry = manifest_data[0]
        if not isinstance(entry, dict):
            raise FormatError("Manifest entry must be a JSON object", manifest_path)

        config_ref = entry.get("Config")
        if not isinstance(config_ref, str):
            raise FormatError("Manifest entry has no 'Config' path", manifest_path)
        referenced = Path(os.path.normpath(root / config_ref))
        if referenced != Path(os.path.normpath(roles[CONFIG_ROLE])):
            raise FormatError(
                f"Config '{roles[CONFIG_ROLE].name}' differs from '{config_ref}' inside manifest",
                manifest_path,
            )

        layer_refs = entry.get("Layers")
        if not isinstance(layer_refs, list):
            raise FormatError("Manifest entry has no 'Layers' array", manifest_path)

        ordered: List[Path] = []
        for layer_ref in layer_refs:
            if not isinstance(layer_ref, str):
                raise FormatError(f"Bad layer path {layer_ref!r} inside manifest", manifest_path)
            layer_name = PurePosixPath(layer_ref).parent.as_posix()
            if layer_name not in layer_names:
                raise FormatError(
                    f"Layer '{layer_ref}' inside manifest doesn't exist", manifest_path
                )
            ordered.append(root / layer_name)

        unreferenced = sorted(layer_names - {p.name for p in ordered})
        if unreferenced:
            raise FormatError(
                f"Layer directories not referenced by manifest: {unreferenced}", manifest_path
            )
        return ordered


def inspect_image(root: Union[str, Path]) -> ImageLayout:
    """Validate an extracted image directory with the default inspector.

    Args:
        root: Directory holding the extracted image

    Returns:
        ImageLayout with the role map and the canonical layer sequence

    Raises:
        FormatError: If the layout is invalid
        DigestMismatchError: If the config does not match its claimed digest
    """
    return DockerArchiveInspector().inspect(root)
