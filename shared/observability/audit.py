"""Audit trail of attempted patient mutations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from .logger import get_logger, get_request_id

__all__ = [
    "AuditRepository",
    "InMemoryAuditRepository",
    "PatientAudit",
    "StdoutAuditRepository",
    "get_audit_repository",
    "record_patient_audit",
]


@dataclass(slots=True, frozen=True)
class PatientAudit:
    """One mutation attempt: which procedure, by whom, on which record, and how it ended."""

    event: str
    actor: str | None = None
    subject: str | None = None
    success: bool | None = None
    request_id: str | None = None
    service: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "procedure": self.event,
            "actor": self.actor,
            "subject": self.subject,
            "success": self.success,
            "requestId": self.request_id,
            "service": self.service,
            "metadata": dict(self.metadata),
            "createdAt": self.created_at.isoformat(),
        }


class AuditRepository(Protocol):
    async def persist(self, audit: PatientAudit) -> None:  # pragma: no cover - interface definition
        """Store ``audit``."""


class StdoutAuditRepository:
    """Write each entry as a ``patient_audit`` structured log event."""

    def __init__(self, logger_name: str = "audit") -> None:
        self._logger = get_logger(logger_name)

    async def persist(self, audit: PatientAudit) -> None:
        self._logger.info("patient_audit", **audit.to_dict())


class InMemoryAuditRepository:
    """Keep entries in a list; used by tests and local tooling."""

    def __init__(self) -> None:
        self.entries: list[PatientAudit] = []

    async def persist(self, audit: PatientAudit) -> None:
        self.entries.append(audit)


_repository: AuditRepository | None = None


def get_audit_repository() -> AuditRepository:
    global _repository
    if _repository is None:
        _repository = StdoutAuditRepository()
    return _repository


async def record_patient_audit(
    event: str,
    *,
    actor: str | None = None,
    subject: str | None = None,
    success: bool | None = None,
    metadata: dict[str, Any] | None = None,
    repository: AuditRepository | None = None,
    request_id: str | None = None,
    service: str | None = None,
) -> PatientAudit:
    """Build an entry and hand it to ``repository`` (the process default if omitted).

    Missing request id and service name are filled in from the current
    logging context.
    """

    bound = structlog.contextvars.get_contextvars()
    entry = PatientAudit(
        event=event,
        actor=actor,
        subject=subject,
        success=success,
        request_id=request_id or get_request_id(),
        service=service or bound.get("service"),
        metadata=dict(metadata or {}),
    )
    await (repository or get_audit_repository()).persist(entry)
    return entry
