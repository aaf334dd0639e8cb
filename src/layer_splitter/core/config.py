"""Settings and split plan files."""

import json
import tomllib
from pathlib import Path
from typing import Any, Dict, Union

import yaml  # type: ignore[import-untyped]
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import PathArgumentError, PlanError
from .types import SplitPlan


class Settings(BaseSettings):
    # Workspace paths
    WORK_DIR: str = "tmp"  # Temporary working directory, removed after each run
    OUTPUT_DIR: str = "."  # Where split archives or merge.tar are written

    # Packing
    COMPRESS_LEVEL: str = "default"  # 0-9 or none|fast|default|best

    # Observability
    LOG_FORMAT: str = "auto"  # json|plain|auto

    # Working directory creation retries (absorbs OS deletion latency)
    MKDIR_ATTEMPTS: int = 5
    MKDIR_BACKOFF_MAX: float = 2.0

    model_config = SettingsConfigDict(
        env_prefix="LAYER_SPLITTER_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


SETTINGS = Settings()


def _read_plan_data(config_path: Path) -> Dict[str, Any]:
    suffix = config_path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    if suffix == ".toml":
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    with open(config_path, encoding="utf-8") as f:
        return json.load(f)


def load_plan_file(config_file: Union[str, Path]) -> SplitPlan:
    """Load a split plan from a JSON, YAML or TOML file.

    The file holds two parallel arrays, for example
    ``{"names": ["os", "lib", "app"], "layers": [1, -1, 1]}``.

    Raises:
        PathArgumentError: If the file does not exist
        PlanError: If the file cannot be parsed or the plan is invalid
    """
    config_path = Path(config_file)
    if not config_path.is_file():
        raise PathArgumentError("Plan file does not exist", config_path)

    try:
        data = _read_plan_data(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise PlanError(f"Config file of arguments is invalid: {e}") from e

    if not isinstance(data, dict):
        raise PlanError("Config file of arguments must hold a mapping")

    names = data.get("names")
    layers = data.get("layers")
    if not isinstance(names, list) or not isinstance(layers, list):
        raise PlanError("Config file of arguments needs 'names' and 'layers' arrays")

    bad_names = [n for n in names if not isinstance(n, str)]
    if bad_names:
        raise PlanError(f"Split names in config file must be strings, got {bad_names!r}")

    return SplitPlan.from_lists(names, layers)

