"""Typed remote procedures: declaration, routing and guarded dispatch."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

import structlog
from pydantic import BaseModel, ValidationError

from shared.http.errors import ErrorKind, NotFoundError, ProcedureError
from shared.observability.audit import record_patient_audit
from shared.observability.logger import get_logger

from .context import ProcedureContext
from .error_mapper import map_store_error, map_validation_error
from .guards import Guard, GuardLevel, guards_for, run_guards

logger = get_logger(__name__)

Handler = Callable[[ProcedureContext, Any], Awaitable[Any]]

_GUARD_KINDS = frozenset({ErrorKind.UNAUTHENTICATED, ErrorKind.FORBIDDEN})


class ProcedureType(str, Enum):
    """Queries only read; mutations change stored state and are audited."""

    QUERY = "query"
    MUTATION = "mutation"


@dataclass(slots=True, frozen=True)
class Procedure:
    """A guarded, schema-validated operation exposed to callers."""

    name: str
    type: ProcedureType
    level: GuardLevel
    input_model: type[BaseModel]
    handler: Handler
    failure_message: str

    @property
    def guards(self) -> tuple[Guard, ...]:
        return guards_for(self.level)

    def parse_input(self, raw_input: Any) -> BaseModel:
        """Validate ``raw_input`` against the procedure's input model."""

        try:
            return self.input_model.model_validate(
                {} if raw_input is None else raw_input
            )
        except ValidationError as exc:
            raise map_validation_error(exc) from exc

    async def invoke(self, context: ProcedureContext, raw_input: Any) -> Any:
        """Run guards, validation and the handler, in that order.

        Whatever the handler raises leaves this method as a
        :class:`ProcedureError`; guard and validation failures never reach
        the store.
        """

        context = run_guards(self.guards, context)
        payload = self.parse_input(raw_input)
        try:
            return await self.handler(context, payload)
        except Exception as exc:
            raise map_store_error(exc, failure_message=self.failure_message) from exc


class ProcedureRouter:
    """Registry of procedures addressed by dotted paths such as ``patient.getAll``."""

    def __init__(self) -> None:
        self._procedures: dict[str, Procedure] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._procedures

    def __len__(self) -> int:
        return len(self._procedures)

    @property
    def procedures(self) -> Mapping[str, Procedure]:
        return dict(self._procedures)

    def add(self, procedure: Procedure, *, path: str | None = None) -> Procedure:
        key = path or procedure.name
        if key in self._procedures:
            raise ValueError(f"Procedure '{key}' is already registered")
        self._procedures[key] = procedure
        return procedure

    def _register(
        self,
        type_: ProcedureType,
        name: str,
        *,
        level: GuardLevel,
        input_model: type[BaseModel],
        failure_message: str,
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add(
                Procedure(
                    name=name,
                    type=type_,
                    level=level,
                    input_model=input_model,
                    handler=handler,
                    failure_message=failure_message,
                )
            )
            return handler

        return decorator

    def query(
        self,
        name: str,
        *,
        level: GuardLevel,
        input_model: type[BaseModel],
        failure_message: str,
    ) -> Callable[[Handler], Handler]:
        """Decorator registering a read-only procedure."""

        return self._register(
            ProcedureType.QUERY,
            name,
            level=level,
            input_model=input_model,
            failure_message=failure_message,
        )

    def mutation(
        self,
        name: str,
        *,
        level: GuardLevel,
        input_model: type[BaseModel],
        failure_message: str,
    ) -> Callable[[Handler], Handler]:
        """Decorator registering a state-changing procedure."""

        return self._register(
            ProcedureType.MUTATION,
            name,
            level=level,
            input_model=input_model,
            failure_message=failure_message,
        )

    def mount(self, prefix: str, router: "ProcedureRouter") -> "ProcedureRouter":
        """Register every procedure of ``router`` under ``prefix.``."""

        for path, procedure in router._procedures.items():
            self.add(procedure, path=f"{prefix}.{path}")
        return self

    def resolve(self, path: str) -> Procedure:
        procedure = self._procedures.get(path)
        if procedure is None:
            raise NotFoundError(f"No procedure named '{path}'")
        return procedure

    async def call(self, path: str, raw_input: Any, context: ProcedureContext) -> Any:
        """Dispatch ``path`` with ``raw_input`` under ``context``.

        Mutations that get past their guards are written to the audit trail
        whether they succeed or fail.
        """

        procedure = self.resolve(path)
        start = time.perf_counter()
        with structlog.contextvars.bound_contextvars(
            procedure=path, actor=context.actor
        ):
            try:
                result = await procedure.invoke(context, raw_input)
            except ProcedureError as exc:
                if exc.kind in _GUARD_KINDS:
                    logger.info("procedure_rejected", kind=exc.kind.value)
                    raise
                duration_ms = (time.perf_counter() - start) * 1000.0
                log = logger.warning if exc.kind is ErrorKind.INTERNAL_ERROR else logger.info
                log("procedure_failed", kind=exc.kind.value, duration_ms=duration_ms)
                if procedure.type is ProcedureType.MUTATION:
                    await _audit(path, context, raw_input, success=False, kind=exc.kind.value)
                raise

            duration_ms = (time.perf_counter() - start) * 1000.0
            logger.info("procedure_completed", duration_ms=duration_ms)
            if procedure.type is ProcedureType.MUTATION:
                await _audit(path, context, raw_input, success=True, result=result)
            return result


def _subject(raw_input: Any, result: Any) -> str | None:
    identifier = getattr(result, "id", None)
    if identifier is None and isinstance(raw_input, Mapping):
        identifier = raw_input.get("id")
    return str(identifier) if identifier is not None else None


async def _audit(
    path: str,
    context: ProcedureContext,
    raw_input: Any,
    *,
    success: bool,
    kind: str | None = None,
    result: Any = None,
) -> None:
    metadata = {"kind": kind} if kind else {}
    try:
        await record_patient_audit(
            path,
            actor=context.actor,
            subject=_subject(raw_input, result),
            success=success,
            metadata=metadata,
            repository=context.audit,
            request_id=context.request_id,
        )
    except Exception as exc:
        # The outcome of the procedure stands even when the trail cannot be written.
        logger.exception("audit_write_failed", error_type=type(exc).__name__)


__all__ = [
    "Handler",
    "Procedure",
    "ProcedureRouter",
    "ProcedureType",
]
