"""Record store contract for patients plus an in-memory implementation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Protocol

from shared.models.patient import Patient
from shared.models.query import AnyOf, OrderBy, matches

_WRITABLE_FIELDS = frozenset(
    {"first_name", "last_name", "email", "phone_number", "dob"}
)


class StoreError(RuntimeError):
    """Base error for record store operations."""


class RecordNotFoundError(StoreError):
    """Raised when an update or delete addresses a missing record."""

    def __init__(self, patient_id: int, message: str | None = None) -> None:
        super().__init__(message or f"Patient {patient_id} does not exist.")
        self.patient_id = patient_id


class UniqueViolationError(StoreError):
    """Raised when a write would duplicate a unique column."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        constraint: str | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.constraint = constraint
        self.original = original


class PatientStore(Protocol):
    """Operations the procedure layer needs from a patient store."""

    async def count(self, where: AnyOf | None) -> int:
        """Return the number of records matching ``where``."""

    async def find_many(
        self, where: AnyOf | None, order: OrderBy, offset: int, limit: int
    ) -> list[Patient]:
        """Return one ordered page of records matching ``where``."""

    async def find_one(self, patient_id: int) -> Patient | None:
        """Return the record with ``patient_id`` or ``None``."""

    async def create(self, fields: Mapping[str, Any]) -> Patient:
        """Insert a record; raises :class:`UniqueViolationError` on duplicates."""

    async def update(self, patient_id: int, fields: Mapping[str, Any]) -> Patient:
        """Replace the given fields; raises on missing ids and duplicates."""

    async def delete(self, patient_id: int) -> Patient:
        """Remove and return a record; raises :class:`RecordNotFoundError`."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _writable(fields: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - _WRITABLE_FIELDS
    if unknown:
        raise StoreError(f"Unknown patient fields: {', '.join(sorted(unknown))}")
    return dict(fields)


class InMemoryPatientStore:
    """Dictionary-backed store used for tests, demos and local development.

    Identifiers come from a counter that only moves forward, so ids are never
    reused after a delete. Records are copied on the way in and out.
    """

    def __init__(self, patients: Iterable[Mapping[str, Any]] | None = None) -> None:
        self._records: dict[int, Patient] = {}
        self._next_id = 1
        for fields in patients or []:
            self._insert(fields)

    def _insert(self, fields: Mapping[str, Any]) -> Patient:
        values = _writable(fields)
        self._ensure_unique_email(values.get("email"))
        now = _utcnow()
        patient = Patient(id=self._next_id, created_at=now, updated_at=now, **values)
        self._records[patient.id] = patient
        self._next_id += 1
        return patient

    def _ensure_unique_email(self, email: Any, *, exclude_id: int | None = None) -> None:
        if email is None:
            return
        for record in self._records.values():
            if record.id != exclude_id and record.email == email:
                raise UniqueViolationError(
                    f"A patient with email '{email}' already exists.",
                    field="email",
                    constraint="patients_email_key",
                )

    def _select(self, where: AnyOf | None) -> list[Patient]:
        return [
            record
            for record in self._records.values()
            if matches(where, record.model_dump())
        ]

    async def count(self, where: AnyOf | None) -> int:
        return len(self._select(where))

    async def find_many(
        self, where: AnyOf | None, order: OrderBy, offset: int, limit: int
    ) -> list[Patient]:
        # sorted() is stable, so ties keep insertion (id) order.
        selected = sorted(
            self._select(where),
            key=lambda record: getattr(record, order.field),
            reverse=order.descending,
        )
        return [record.model_copy() for record in selected[offset : offset + limit]]

    async def find_one(self, patient_id: int) -> Patient | None:
        record = self._records.get(patient_id)
        return record.model_copy() if record is not None else None

    async def create(self, fields: Mapping[str, Any]) -> Patient:
        return self._insert(fields).model_copy()

    async def update(self, patient_id: int, fields: Mapping[str, Any]) -> Patient:
        record = self._records.get(patient_id)
        if record is None:
            raise RecordNotFoundError(patient_id)
        values = _writable(fields)
        self._ensure_unique_email(values.get("email"), exclude_id=patient_id)
        updated = record.model_copy(update={**values, "updated_at": _utcnow()})
        self._records[patient_id] = updated
        return updated.model_copy()

    async def delete(self, patient_id: int) -> Patient:
        record = self._records.pop(patient_id, None)
        if record is None:
            raise RecordNotFoundError(patient_id)
        return record


__all__ = [
    "InMemoryPatientStore",
    "PatientStore",
    "RecordNotFoundError",
    "StoreError",
    "UniqueViolationError",
]
