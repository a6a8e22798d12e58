from __future__ import annotations

import pytest

from shared.observability.audit import (
    InMemoryAuditRepository,
    PatientAudit,
    StdoutAuditRepository,
    get_audit_repository,
    record_patient_audit,
)
from shared.observability.logger import request_context


def test_to_dict_uses_camel_case_keys() -> None:
    entry = PatientAudit(event="patient.delete", actor="admin@example.com", subject="3")

    payload = entry.to_dict()

    assert payload["procedure"] == "patient.delete"
    assert payload["requestId"] is None
    assert "createdAt" in payload


def test_default_repository_is_shared() -> None:
    repository = get_audit_repository()

    assert isinstance(repository, StdoutAuditRepository)
    assert get_audit_repository() is repository


@pytest.mark.anyio("asyncio")
async def test_record_uses_bound_request_context() -> None:
    collector = InMemoryAuditRepository()

    with request_context(request_id="req-42", service="patient_records"):
        entry = await record_patient_audit(
            "patient.update",
            actor="admin@example.com",
            subject="1",
            success=True,
            repository=collector,
        )

    assert collector.entries == [entry]
    assert entry.request_id == "req-42"
    assert entry.service == "patient_records"
    assert entry.metadata == {}


@pytest.mark.anyio("asyncio")
async def test_explicit_request_id_wins() -> None:
    collector = InMemoryAuditRepository()

    entry = await record_patient_audit(
        "patient.create", request_id="explicit", repository=collector, metadata={"kind": "CONFLICT"}
    )

    assert entry.request_id == "explicit"
    assert entry.metadata == {"kind": "CONFLICT"}


@pytest.mark.anyio("asyncio")
async def test_stdout_repository_logs_entry() -> None:
    entry = PatientAudit(event="patient.create", actor="admin@example.com", success=True)

    await StdoutAuditRepository().persist(entry)
