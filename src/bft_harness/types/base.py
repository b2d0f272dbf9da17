"""Pydantic base models for harness settings and node wire data."""

from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def load_yaml(path: Path | str) -> Any:
    """
    Read one YAML document.

    An empty file reads as an empty mapping.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with Path(path).open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return {} if data is None else data


class CamelModel(BaseModel):
    """
    Base for settings read from files or sent to nodes.

    Fields are accepted under their snake_case name or its camelCase alias, so
    ``startup_timeout`` may also be written ``startupTimeout``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
        arbitrary_types_allowed=True,
    )

    def copy(self: Self, **kwargs: Any) -> Self:
        """Create a copy of the model with the updated fields that are validated."""
        return self.__class__(**(self.model_dump(exclude_unset=True) | kwargs))

    @classmethod
    def from_yaml_file(cls, path: Path | str) -> Self:
        """
        Load and validate a model from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the data fails validation.
        """
        return cls.model_validate(load_yaml(path))


class StrictBaseModel(CamelModel):
    """Immutable model with exact types, shared safely between scenarios."""

    model_config = CamelModel.model_config | {
        "extra": "forbid",
        "frozen": True,
        "strict": True,
    }
