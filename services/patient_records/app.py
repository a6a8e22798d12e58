"""FastAPI application exposing the patient record procedures over HTTP."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException

from repositories.patients import PatientStore
from repositories.sql import SqlPatientStore
from shared.config import get_settings
from shared.http.errors import InvalidInputError, register_exception_handlers
from shared.observability.audit import AuditRepository, get_audit_repository
from shared.observability.logger import configure_logging, get_logger
from shared.observability.middleware import RequestContextMiddleware

from .context import ProcedureContext
from .patients import app_router
from .procedures import ProcedureRouter, ProcedureType
from .session import HeaderSessionResolver, SessionResolver

_settings = get_settings()
SERVICE_NAME = _settings.app.service_name

configure_logging(service_name=SERVICE_NAME, level=_settings.logging.level)

logger = get_logger(__name__)


@lru_cache
def get_store() -> PatientStore:
    """Return the process-wide SQL patient store."""

    database = get_settings().database
    return SqlPatientStore(
        database.url, echo=database.echo, pool_size=database.pool_size
    )


@lru_cache
def get_session_resolver() -> SessionResolver:
    """Return the resolver reading identities forwarded by the gateway."""

    return HeaderSessionResolver(get_settings().session)


def get_router() -> ProcedureRouter:
    return app_router


def get_audit() -> AuditRepository:
    return get_audit_repository()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if settings.database.create_schema:
        store = get_store()
        if isinstance(store, SqlPatientStore):
            await store.create_schema()
            logger.info("patient_schema_ready")
    try:
        yield
    finally:
        if get_store.cache_info().currsize:
            store = get_store()
            if isinstance(store, SqlPatientStore):
                await store.dispose()


app = FastAPI(title="Patient Records Service", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
register_exception_handlers(app)


async def _build_context(
    request: Request,
    store: PatientStore,
    resolver: SessionResolver,
    audit: AuditRepository,
) -> ProcedureContext:
    identity = await resolver.resolve(request)
    return ProcedureContext(
        store=store,
        identity=identity,
        request_id=getattr(request.state, "request_id", None),
        audit=audit,
    )


def _decode_input(raw: str | bytes | None) -> Any:
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise InvalidInputError("Input is not valid JSON") from exc


def _envelope(result: Any) -> dict[str, Any]:
    return {"result": jsonable_encoder(result, by_alias=True)}


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Return a simple health payload for orchestration checks."""

    return {"status": "ok", "service": SERVICE_NAME}


@app.post("/rpc/{path}", tags=["rpc"])
async def call_procedure(
    path: str,
    request: Request,
    store: PatientStore = Depends(get_store),
    resolver: SessionResolver = Depends(get_session_resolver),
    router: ProcedureRouter = Depends(get_router),
    audit: AuditRepository = Depends(get_audit),
) -> dict[str, Any]:
    """Invoke any procedure with the JSON request body as its input."""

    router.resolve(path)
    raw_input = _decode_input(await request.body())
    context = await _build_context(request, store, resolver, audit)
    result = await router.call(path, raw_input, context)
    return _envelope(result)


@app.get("/rpc/{path}", tags=["rpc"])
async def call_query(
    path: str,
    request: Request,
    input: str | None = Query(default=None),
    store: PatientStore = Depends(get_store),
    resolver: SessionResolver = Depends(get_session_resolver),
    router: ProcedureRouter = Depends(get_router),
    audit: AuditRepository = Depends(get_audit),
) -> dict[str, Any]:
    """Invoke a query procedure with its input JSON-encoded in ``?input=``."""

    procedure = router.resolve(path)
    if procedure.type is not ProcedureType.QUERY:
        raise StarletteHTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail=f"Procedure '{path}' is a mutation; use POST",
        )
    raw_input = _decode_input(input)
    context = await _build_context(request, store, resolver, audit)
    result = await router.call(path, raw_input, context)
    return _envelope(result)


def get_app() -> FastAPI:
    """Return the FastAPI application instance."""

    return app


__all__ = [
    "app",
    "get_app",
    "get_audit",
    "get_router",
    "get_session_resolver",
    "get_store",
]
