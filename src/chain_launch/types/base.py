"""Reusable, strict base models for launch configuration."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    A base model that reads and writes field names in camel case.

    Launch configuration files follow the node tooling convention, so the
    field `ws_port` in a Python model is spelled `wsPort` in JSON and YAML.
    Python callers may still use the snake_case names.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
    )


class StrictBaseModel(CamelModel):
    """A strict, immutable pydantic base model."""

    model_config = CamelModel.model_config | {
        "extra": "forbid",
        "frozen": True,
        "strict": True,
    }
