"""
Shared Pydantic base models for strict validation.

All persisted records inherit from StrictModel. Records written to disk use
camelCase field names, so they inherit from CamelModel instead.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StrictModel(BaseModel):
    """Base model with strict validation settings."""

    model_config = ConfigDict(
        extra='forbid',  # Raise error on unexpected fields
        strict=True,  # Strict type validation
        frozen=True,  # Immutable (cannot modify after creation)
    )


class CamelModel(StrictModel):
    """Strict model whose JSON form uses camelCase keys.

    Python code constructs with snake_case names; files on disk are read and
    written with the camelCase aliases (dump with ``by_alias=True``).
    """

    model_config = ConfigDict(
        extra='forbid',
        strict=True,
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )
