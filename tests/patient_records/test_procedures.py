from __future__ import annotations

from typing import Any, Mapping

import pytest

from repositories.patients import InMemoryPatientStore, StoreError
from services.patient_records.context import ProcedureContext
from services.patient_records.guards import GuardLevel
from services.patient_records.patients import app_router
from services.patient_records.procedures import ProcedureRouter, ProcedureType
from shared.http.errors import (
    ConflictError,
    ErrorKind,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    ProcedureError,
    UnauthenticatedError,
)
from shared.models.identity import Identity
from shared.models.patient import PatientIdInput, PatientListResponse
from shared.observability.audit import InMemoryAuditRepository

NEW_PATIENT = {
    "firstName": "Emily",
    "lastName": "Davis",
    "email": "emily.davis@example.com",
    "phoneNumber": "+1-555-0104",
    "dob": "1992-05-30",
}


class RecordingStore(InMemoryPatientStore):
    """In-memory store that remembers which operations were invoked."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.calls: list[str] = []

    async def count(self, where):  # type: ignore[override]
        self.calls.append("count")
        return await super().count(where)

    async def find_many(self, where, order, offset, limit):  # type: ignore[override]
        self.calls.append("find_many")
        return await super().find_many(where, order, offset, limit)

    async def find_one(self, patient_id):  # type: ignore[override]
        self.calls.append("find_one")
        return await super().find_one(patient_id)

    async def create(self, fields: Mapping[str, Any]):  # type: ignore[override]
        self.calls.append("create")
        return await super().create(fields)

    async def update(self, patient_id, fields):  # type: ignore[override]
        self.calls.append("update")
        return await super().update(patient_id, fields)

    async def delete(self, patient_id):  # type: ignore[override]
        self.calls.append("delete")
        return await super().delete(patient_id)


class BrokenCountStore(InMemoryPatientStore):
    async def count(self, where):  # type: ignore[override]
        raise StoreError("connection reset")


@pytest.fixture
def recording_store(sample_patients) -> RecordingStore:
    return RecordingStore(sample_patients)


@pytest.fixture
def audit() -> InMemoryAuditRepository:
    return InMemoryAuditRepository()


def _context(
    store: InMemoryPatientStore,
    identity: Identity | None,
    audit: InMemoryAuditRepository | None = None,
) -> ProcedureContext:
    return ProcedureContext(
        store=store, identity=identity, request_id="req-1", audit=audit
    )


def test_app_router_exposes_patient_procedures() -> None:
    procedures = app_router.procedures

    assert set(procedures) == {
        "patient.getAll",
        "patient.getById",
        "patient.create",
        "patient.update",
        "patient.delete",
    }
    assert procedures["patient.getAll"].type is ProcedureType.QUERY
    assert procedures["patient.getById"].level is GuardLevel.AUTHENTICATED
    assert procedures["patient.delete"].type is ProcedureType.MUTATION
    assert procedures["patient.delete"].level is GuardLevel.ADMIN


def test_router_rejects_duplicate_registration() -> None:
    router = ProcedureRouter()

    @router.query(
        "ping", level=GuardLevel.PUBLIC, input_model=PatientIdInput, failure_message="x"
    )
    async def ping(context, params):  # pragma: no cover - never invoked
        return None

    with pytest.raises(ValueError):
        router.query(
            "ping",
            level=GuardLevel.PUBLIC,
            input_model=PatientIdInput,
            failure_message="x",
        )(ping)
    assert "ping" in router
    assert len(router) == 1


@pytest.mark.anyio("asyncio")
async def test_unknown_procedure_is_not_found(admin: Identity, store) -> None:
    with pytest.raises(NotFoundError):
        await app_router.call("patient.archive", {}, _context(store, admin))


@pytest.mark.anyio("asyncio")
async def test_anonymous_caller_is_unauthenticated_even_for_admin_procedures(
    recording_store: RecordingStore, audit: InMemoryAuditRepository
) -> None:
    with pytest.raises(UnauthenticatedError):
        await app_router.call(
            "patient.delete", {"id": 1}, _context(recording_store, None, audit)
        )

    assert recording_store.calls == []
    assert audit.entries == []


@pytest.mark.anyio("asyncio")
async def test_user_cannot_mutate_and_store_is_untouched(
    recording_store: RecordingStore, audit: InMemoryAuditRepository, user: Identity
) -> None:
    with pytest.raises(ForbiddenError):
        await app_router.call(
            "patient.create", NEW_PATIENT, _context(recording_store, user, audit)
        )

    assert recording_store.calls == []
    assert audit.entries == []


@pytest.mark.anyio("asyncio")
async def test_guards_run_before_validation(
    recording_store: RecordingStore, user: Identity
) -> None:
    with pytest.raises(ForbiddenError):
        await app_router.call(
            "patient.create", {"email": "nope"}, _context(recording_store, user)
        )


@pytest.mark.anyio("asyncio")
async def test_invalid_input_never_reaches_store(
    recording_store: RecordingStore, admin: Identity
) -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        await app_router.call(
            "patient.getAll", {"limit": 101}, _context(recording_store, admin)
        )

    assert exc_info.value.kind is ErrorKind.INVALID_INPUT
    assert exc_info.value.errors
    assert recording_store.calls == []


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "raw_input",
    [{"id": "1"}, {"id": 1.0}, {"id": True}, {}, None, [1]],
)
async def test_get_by_id_requires_integer_id(
    recording_store: RecordingStore, user: Identity, raw_input: Any
) -> None:
    with pytest.raises(InvalidInputError):
        await app_router.call("patient.getById", raw_input, _context(recording_store, user))

    assert recording_store.calls == []


@pytest.mark.anyio("asyncio")
async def test_get_all_without_input_uses_defaults(
    store: InMemoryPatientStore, user: Identity
) -> None:
    result = await app_router.call("patient.getAll", None, _context(store, user))

    assert isinstance(result, PatientListResponse)
    assert result.pagination.page == 1
    assert result.pagination.limit == 10
    assert result.pagination.total == 3
    assert [patient.id for patient in result.patients] == [1, 2, 3]


@pytest.mark.anyio("asyncio")
async def test_get_by_id_missing_patient(store: InMemoryPatientStore, user: Identity) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        await app_router.call("patient.getById", {"id": 999}, _context(store, user))

    assert exc_info.value.message == "Patient not found"


@pytest.mark.anyio("asyncio")
async def test_create_then_get_round_trips(
    store: InMemoryPatientStore, admin: Identity, audit: InMemoryAuditRepository
) -> None:
    created = await app_router.call(
        "patient.create", NEW_PATIENT, _context(store, admin, audit)
    )
    fetched = await app_router.call(
        "patient.getById", {"id": created.id}, _context(store, admin, audit)
    )

    assert fetched == created
    assert fetched.email == NEW_PATIENT["email"]
    assert fetched.dob.isoformat() == NEW_PATIENT["dob"]
    assert created.id == 4
    assert [entry.event for entry in audit.entries] == ["patient.create"]
    entry = audit.entries[0]
    assert entry.actor == "admin@example.com"
    assert entry.subject == "4"
    assert entry.success is True
    assert entry.request_id == "req-1"


@pytest.mark.anyio("asyncio")
async def test_create_duplicate_email_conflicts(
    store: InMemoryPatientStore, admin: Identity, audit: InMemoryAuditRepository
) -> None:
    duplicate = {**NEW_PATIENT, "email": "jane.smith@example.com"}

    with pytest.raises(ConflictError) as exc_info:
        await app_router.call("patient.create", duplicate, _context(store, admin, audit))

    assert exc_info.value.message == "A patient with this email already exists"
    assert await store.count(None) == 3
    assert len(audit.entries) == 1
    assert audit.entries[0].success is False
    assert audit.entries[0].metadata == {"kind": "CONFLICT"}


@pytest.mark.anyio("asyncio")
async def test_update_changes_only_supplied_fields(
    store: InMemoryPatientStore, admin: Identity
) -> None:
    before = await store.find_one(2)
    assert before is not None

    updated = await app_router.call(
        "patient.update",
        {"id": 2, "data": {"phoneNumber": "+1-555-9999"}},
        _context(store, admin),
    )

    assert updated.phone_number == "+1-555-9999"
    assert updated.first_name == before.first_name
    assert updated.email == before.email
    assert updated.created_at == before.created_at
    assert updated.updated_at >= before.updated_at


@pytest.mark.anyio("asyncio")
async def test_update_with_empty_data_only_touches_timestamp(
    store: InMemoryPatientStore, admin: Identity
) -> None:
    before = await store.find_one(1)
    assert before is not None

    updated = await app_router.call(
        "patient.update", {"id": 1, "data": {}}, _context(store, admin)
    )

    assert updated.model_dump(exclude={"updated_at"}) == before.model_dump(
        exclude={"updated_at"}
    )
    assert updated.updated_at >= before.updated_at


@pytest.mark.anyio("asyncio")
async def test_update_rejects_explicit_null(
    store: InMemoryPatientStore, admin: Identity
) -> None:
    with pytest.raises(InvalidInputError):
        await app_router.call(
            "patient.update",
            {"id": 1, "data": {"firstName": None}},
            _context(store, admin),
        )


@pytest.mark.anyio("asyncio")
async def test_update_missing_patient_is_not_found(
    store: InMemoryPatientStore, admin: Identity
) -> None:
    with pytest.raises(NotFoundError):
        await app_router.call(
            "patient.update",
            {"id": 42, "data": {"firstName": "Ann"}},
            _context(store, admin),
        )


@pytest.mark.anyio("asyncio")
async def test_update_to_taken_email_conflicts(
    store: InMemoryPatientStore, admin: Identity
) -> None:
    with pytest.raises(ConflictError):
        await app_router.call(
            "patient.update",
            {"id": 1, "data": {"email": "jane.smith@example.com"}},
            _context(store, admin),
        )


@pytest.mark.anyio("asyncio")
async def test_delete_twice_reports_not_found_the_second_time(
    store: InMemoryPatientStore, admin: Identity, audit: InMemoryAuditRepository
) -> None:
    deleted = await app_router.call(
        "patient.delete", {"id": 1}, _context(store, admin, audit)
    )
    assert deleted.id == 1

    with pytest.raises(NotFoundError):
        await app_router.call("patient.delete", {"id": 1}, _context(store, admin, audit))
    with pytest.raises(NotFoundError):
        await app_router.call("patient.getById", {"id": 1}, _context(store, admin, audit))

    assert [(entry.event, entry.success) for entry in audit.entries] == [
        ("patient.delete", True),
        ("patient.delete", False),
    ]


@pytest.mark.anyio("asyncio")
async def test_ids_are_not_reused_after_delete(
    store: InMemoryPatientStore, admin: Identity
) -> None:
    await app_router.call("patient.delete", {"id": 3}, _context(store, admin))

    created = await app_router.call("patient.create", NEW_PATIENT, _context(store, admin))

    assert created.id == 4


@pytest.mark.anyio("asyncio")
async def test_unexpected_store_failure_becomes_internal_error(user: Identity) -> None:
    store = BrokenCountStore()

    with pytest.raises(InternalError) as exc_info:
        await app_router.call("patient.getAll", {}, _context(store, user))

    assert exc_info.value.kind is ErrorKind.INTERNAL_ERROR
    assert exc_info.value.message == "Failed to fetch patients"
    assert "connection reset" not in exc_info.value.message


@pytest.mark.anyio("asyncio")
async def test_every_failure_carries_exactly_one_kind(
    store: InMemoryPatientStore, user: Identity
) -> None:
    with pytest.raises(ProcedureError) as exc_info:
        await app_router.call("patient.delete", {"id": 1}, _context(store, user))

    assert isinstance(exc_info.value.kind, ErrorKind)
    assert exc_info.value.extensions["kind"] is exc_info.value.kind


class BrokenFindStore(InMemoryPatientStore):
    async def find_many(self, where, order, offset, limit):  # type: ignore[override]
        raise RuntimeError("statement timeout")


class SingleRecordStore(InMemoryPatientStore):
    """Store whose listing answers are fixed, to check they pass through untouched."""

    def __init__(self, record) -> None:
        super().__init__()
        self.record = record
        self.find_many_args: tuple | None = None

    async def count(self, where):  # type: ignore[override]
        return 1

    async def find_many(self, where, order, offset, limit):  # type: ignore[override]
        self.find_many_args = (where, order, offset, limit)
        return [self.record]


@pytest.mark.anyio("asyncio")
async def test_get_all_returns_store_records_unmodified(
    store: InMemoryPatientStore, user: Identity
) -> None:
    record = await store.find_one(1)
    single = SingleRecordStore(record)

    result = await app_router.call(
        "patient.getAll",
        {"page": 1, "limit": 10, "sortBy": "createdAt", "sortOrder": "asc"},
        _context(single, user),
    )

    assert result.pagination.total == 1
    assert result.patients == [record]
    where, order, offset, limit = single.find_many_args
    assert where is None
    assert (order.field, order.descending, offset, limit) == ("created_at", False, 0, 10)


@pytest.mark.anyio("asyncio")
async def test_fetch_failure_becomes_internal_error(user: Identity) -> None:
    with pytest.raises(InternalError):
        await app_router.call("patient.getAll", {}, _context(BrokenFindStore(), user))


class FailingAuditRepository:
    def __init__(self) -> None:
        self.attempts = 0

    async def persist(self, audit: Any) -> None:
        self.attempts += 1
        raise RuntimeError("audit sink down")


@pytest.mark.anyio("asyncio")
async def test_audit_failure_does_not_undo_successful_mutation(
    store: InMemoryPatientStore, admin: Identity
) -> None:
    audit = FailingAuditRepository()

    created = await app_router.call(
        "patient.create", NEW_PATIENT, _context(store, admin, audit)  # type: ignore[arg-type]
    )

    assert created.email == NEW_PATIENT["email"]
    assert audit.attempts == 1
    fetched = await app_router.call("patient.getById", {"id": created.id}, _context(store, admin))
    assert fetched == created


@pytest.mark.anyio("asyncio")
async def test_audit_failure_keeps_original_error_kind(
    store: InMemoryPatientStore, admin: Identity
) -> None:
    audit = FailingAuditRepository()

    with pytest.raises(NotFoundError) as exc_info:
        await app_router.call(
            "patient.delete", {"id": 999}, _context(store, admin, audit)  # type: ignore[arg-type]
        )

    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert audit.attempts == 1
