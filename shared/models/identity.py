"""Session principal models supplied by the identity provider."""

from __future__ import annotations

from enum import Enum

from pydantic import ConfigDict, Field

from .base import CamelModel


class Role(str, Enum):
    """Capability tiers recognised by the procedure guards."""

    ADMIN = "ADMIN"
    USER = "USER"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class Identity(CamelModel):
    """Authenticated principal attached to a single inbound call."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Identity provider user identifier")
    email: str = Field(min_length=1, description="Email address of the user")
    role: Role = Field(default=Role.USER, description="Capability tier of the user")


__all__ = ["Identity", "Role"]
