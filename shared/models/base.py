"""Base model helpers shared by the patient records models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


def to_camel(value: str) -> str:
    """Convert ``snake_case`` ``value`` into ``camelCase`` for JSON aliases."""

    components = value.split("_")
    if not components:
        return value
    first, *rest = components
    return first + "".join(token.capitalize() for token in rest)


class CamelModel(BaseModel):
    """Base model applying camelCase aliases and ignoring unknown fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


__all__ = ["CamelModel", "to_camel"]
