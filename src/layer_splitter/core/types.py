"""Core types shared by the split and merge operations."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Union

from pydantic import BaseModel, ValidationError, model_validator

from ..exceptions import PlanError, SplitMetadataError
from ..utils.validator import SENTINEL_COUNT, validate_plan

SPLIT_METADATA_FILENAME = "split_metadata.json"


@dataclass(frozen=True)
class SplitDescriptor:
    """A named slice of the image's layer sequence."""

    name: str
    ordinal_count: int

    @property
    def is_remainder(self) -> bool:
        """True when this split absorbs every layer not claimed by others."""
        return self.ordinal_count == SENTINEL_COUNT


class SplitPlan(BaseModel):
    """Ordered split names with their layer counts."""

    names: List[str]
    layers: List[int]

    # PlanError is not a ValueError, so pydantic lets it propagate unchanged
    @model_validator(mode="after")
    def _check_plan(self) -> "SplitPlan":
        validate_plan(self.names, self.layers)
        return self

    @classmethod
    def from_lists(cls, names: List[str], layers: List[int]) -> "SplitPlan":
        """Build a plan, converting type validation failures into PlanError."""
        try:
            return cls(names=names, layers=layers)
        except ValidationError as e:
            raise PlanError(_describe_validation_error(e)) from e

    @property
    def descriptors(self) -> List[SplitDescriptor]:
        return [SplitDescriptor(n, c) for n, c in zip(self.names, self.layers)]


def _describe_validation_error(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        text = str(item.get("msg", ""))
        messages.append(f"{location}: {text}" if location else text)
    return "; ".join(messages) or "Invalid split plan"


@dataclass
class SplitMetadata:
    """Chain metadata stored inside every split archive."""

    index: int
    parent_id: str
    stack_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "parent_id": self.parent_id,
            "stack_id": self.stack_id,
            "index": self.index,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SplitMetadata":
        """Parse metadata from its JSON form.

        Raises:
            SplitMetadataError: If a field is missing or of the wrong type
        """
        if not isinstance(data, dict):
            raise SplitMetadataError("Split metadata must be a JSON object")

        index = data.get("index")
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise SplitMetadataError(f"Split metadata has bad index: {index!r}")

        parent_id = data.get("parent_id")
        stack_id = data.get("stack_id")
        for key, value in (("parent_id", parent_id), ("stack_id", stack_id)):
            if not isinstance(value, str):
                raise SplitMetadataError(
                    f"Split metadata field '{key}' must be a string, got {value!r}"
                )

        return cls(index=index, parent_id=parent_id, stack_id=stack_id)

    def dump(self, path: Union[str, Path]) -> None:
        """Write metadata as JSON to path."""
        Path(path).write_text(json.dumps(self.to_dict()), encoding="utf-8")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SplitMetadata":
        """Read metadata from a JSON file.

        Raises:
            SplitMetadataError: If the file is missing or cannot be parsed
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise SplitMetadataError(f"Split metadata not found: '{path}'") from e
        except OSError as e:
            raise SplitMetadataError(f"Cannot read split metadata '{path}': {e.strerror}") from e
        except UnicodeDecodeError as e:
            raise SplitMetadataError(f"Cannot decode split metadata: '{path}'") from e
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise SplitMetadataError(f"Invalid JSON in split metadata '{path}': {e}") from e
        return cls.from_dict(data)
