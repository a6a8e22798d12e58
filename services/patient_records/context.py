"""Per-call context handed to guards and procedure handlers."""

from __future__ import annotations

from dataclasses import dataclass

from repositories.patients import PatientStore
from shared.models.identity import Identity
from shared.observability.audit import AuditRepository


@dataclass(slots=True, frozen=True)
class ProcedureContext:
    """Everything a procedure may use while serving a single call.

    ``identity`` is ``None`` for anonymous callers. Guards may narrow the
    context but never widen it; handlers only run after every guard passed.
    """

    store: PatientStore
    identity: Identity | None = None
    request_id: str | None = None
    audit: AuditRepository | None = None

    @property
    def actor(self) -> str | None:
        return self.identity.email if self.identity is not None else None


__all__ = ["ProcedureContext"]
