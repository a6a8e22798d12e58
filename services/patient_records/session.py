"""Session resolution: turn an inbound request into an optional identity."""

from __future__ import annotations

from typing import Protocol

from pydantic import ValidationError
from starlette.requests import Request

from shared.config.settings import SessionSettings
from shared.models.identity import Identity
from shared.observability.logger import get_logger

logger = get_logger(__name__)


class SessionResolver(Protocol):
    """Source of the caller's identity; ``None`` means anonymous."""

    async def resolve(self, request: Request) -> Identity | None:  # pragma: no cover - interface definition
        """Return the identity attached to ``request`` if there is one."""


class HeaderSessionResolver:
    """Read the identity forwarded by a trusted authenticating proxy.

    The proxy in front of the service verifies credentials and forwards the
    user's id, email and role as headers. Requests missing the id or email
    are anonymous; an unrecognised role is treated as no session at all.
    """

    def __init__(self, settings: SessionSettings | None = None) -> None:
        self._settings = settings or SessionSettings()

    async def resolve(self, request: Request) -> Identity | None:
        headers = request.headers
        user_id = (headers.get(self._settings.id_header) or "").strip()
        email = (headers.get(self._settings.email_header) or "").strip()
        if not user_id or not email:
            return None

        role = (headers.get(self._settings.role_header) or "USER").strip().upper()
        try:
            return Identity(id=user_id, email=email, role=role)
        except ValidationError:
            logger.warning("session_rejected", reason="invalid_role", role=role)
            return None


class StaticSessionResolver:
    """Resolve every request to the same identity (tests and local tooling)."""

    def __init__(self, identity: Identity | None) -> None:
        self._identity = identity

    async def resolve(self, request: Request) -> Identity | None:
        return self._identity


__all__ = ["HeaderSessionResolver", "SessionResolver", "StaticSessionResolver"]
