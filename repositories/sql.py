"""SQLAlchemy-backed patient store for PostgreSQL (and SQLite in development)."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Mapping

from sqlalchemy import (
    Column,
    ColumnElement,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    delete,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from shared.models.patient import Patient
from shared.models.query import AnyOf, FieldCondition, FilterOperator, OrderBy
from shared.observability.logger import get_logger

from .patients import RecordNotFoundError, StoreError, UniqueViolationError

logger = get_logger(__name__)

# SQLSTATE for unique_violation in PostgreSQL.
_PG_UNIQUE_VIOLATION = "23505"
_SQLITE_UNIQUE_VIOLATION = "SQLITE_CONSTRAINT_UNIQUE"
EMAIL_CONSTRAINT = "patients_email_key"

metadata = MetaData()

patients_table = Table(
    "patients",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(255), nullable=False),
    Column("last_name", String(255), nullable=False),
    Column("email", String(320), nullable=False),
    Column("phone_number", String(64), nullable=False),
    Column("dob", Date, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("email", name=EMAIL_CONSTRAINT),
    # Without AUTOINCREMENT SQLite may hand out the id of a deleted row again.
    sqlite_autoincrement=True,
)


def compile_condition(condition: FieldCondition) -> ColumnElement[bool]:
    """Translate a :class:`FieldCondition` into a SQL boolean expression."""

    column = patients_table.c[condition.field]
    if condition.operator is FilterOperator.ICONTAINS:
        return column.icontains(condition.value, autoescape=True)
    return column.contains(condition.value, autoescape=True)


def compile_where(where: AnyOf | None) -> ColumnElement[bool] | None:
    if where is None:
        return None
    return or_(*(compile_condition(condition) for condition in where.conditions))


def compile_order(order: OrderBy) -> ColumnElement[Any]:
    column = patients_table.c[order.field]
    return column.desc() if order.descending else column.asc()


def _constraint_name(error: IntegrityError) -> str | None:
    original = error.orig
    # psycopg exposes ``diag``; asyncpg errors sit behind SQLAlchemy's adapter.
    for source in (
        getattr(original, "diag", None),
        original,
        getattr(original, "__cause__", None),
    ):
        name = getattr(source, "constraint_name", None)
        if isinstance(name, str) and name:
            return name
    return None


def is_unique_violation(error: IntegrityError) -> bool:
    """Classify ``error`` by the driver's error code, never its message text."""

    original = error.orig
    code = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if code == _PG_UNIQUE_VIOLATION:
        return True
    return getattr(original, "sqlite_errorname", None) == _SQLITE_UNIQUE_VIOLATION


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_patient(row: RowMapping) -> Patient:
    return Patient.model_validate(dict(row))


class SqlPatientStore:
    """Patient store issuing SQLAlchemy Core statements over an async engine."""

    def __init__(
        self,
        database_url: str,
        *,
        engine: AsyncEngine | None = None,
        echo: bool = False,
        pool_size: int | None = None,
    ) -> None:
        if engine is None:
            engine_kwargs: dict[str, Any] = {"echo": echo}
            if pool_size is not None:
                engine_kwargs["pool_size"] = pool_size
            engine = create_async_engine(database_url, **engine_kwargs)
        self._engine: AsyncEngine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Provide a transactional connection scope with store error translation."""

        try:
            async with self._engine.begin() as connection:
                yield connection
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise UniqueViolationError(
                    "A patient with this email already exists.",
                    field="email",
                    constraint=_constraint_name(exc) or EMAIL_CONSTRAINT,
                    original=exc,
                ) from exc
            raise StoreError("Database constraint violated.") from exc
        except SQLAlchemyError as exc:
            logger.warning("patient_store_error", error_type=type(exc).__name__)
            raise StoreError("Patient store operation failed.") from exc

    async def create_schema(self) -> None:
        """Create the patients table when it does not exist yet."""

        async with self._engine.begin() as connection:
            await connection.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        """Dispose of the underlying engine and its connection pool."""

        await self._engine.dispose()

    async def count(self, where: AnyOf | None) -> int:
        statement = select(func.count()).select_from(patients_table)
        condition = compile_where(where)
        if condition is not None:
            statement = statement.where(condition)
        async with self.transaction() as connection:
            total = await connection.scalar(statement)
        return int(total or 0)

    async def find_many(
        self, where: AnyOf | None, order: OrderBy, offset: int, limit: int
    ) -> list[Patient]:
        statement = (
            select(patients_table)
            .order_by(compile_order(order))
            .offset(offset)
            .limit(limit)
        )
        condition = compile_where(where)
        if condition is not None:
            statement = statement.where(condition)
        async with self.transaction() as connection:
            result = await connection.execute(statement)
            rows = result.mappings().all()
        return [_to_patient(row) for row in rows]

    async def find_one(self, patient_id: int) -> Patient | None:
        statement = select(patients_table).where(patients_table.c.id == patient_id)
        async with self.transaction() as connection:
            result = await connection.execute(statement)
            row = result.mappings().first()
        return _to_patient(row) if row is not None else None

    async def create(self, fields: Mapping[str, Any]) -> Patient:
        now = _utcnow()
        statement = (
            insert(patients_table)
            .values(**fields, created_at=now, updated_at=now)
            .returning(*patients_table.c)
        )
        async with self.transaction() as connection:
            result = await connection.execute(statement)
            row = result.mappings().one()
        return _to_patient(row)

    async def update(self, patient_id: int, fields: Mapping[str, Any]) -> Patient:
        statement = (
            update(patients_table)
            .where(patients_table.c.id == patient_id)
            .values(**fields, updated_at=_utcnow())
            .returning(*patients_table.c)
        )
        async with self.transaction() as connection:
            result = await connection.execute(statement)
            row = result.mappings().first()
        if row is None:
            raise RecordNotFoundError(patient_id)
        return _to_patient(row)

    async def delete(self, patient_id: int) -> Patient:
        statement = (
            delete(patients_table)
            .where(patients_table.c.id == patient_id)
            .returning(*patients_table.c)
        )
        async with self.transaction() as connection:
            result = await connection.execute(statement)
            row = result.mappings().first()
        if row is None:
            raise RecordNotFoundError(patient_id)
        return _to_patient(row)


__all__ = [
    "EMAIL_CONSTRAINT",
    "SqlPatientStore",
    "compile_condition",
    "compile_order",
    "compile_where",
    "is_unique_violation",
    "metadata",
    "patients_table",
]
