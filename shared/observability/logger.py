"""Process-wide logging: structlog events rendered as JSON through loguru.

Structured events pass through :func:`redact_patient_fields` before rendering,
so patient demographics never reach a sink. Record identifiers, procedure
paths and the acting user's email are kept.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Mapping, MutableMapping

import structlog
from loguru import logger as loguru_logger

__all__ = [
    "PATIENT_FIELDS",
    "REDACTED",
    "configure_logging",
    "generate_request_id",
    "get_logger",
    "get_request_id",
    "redact_patient_fields",
    "request_context",
    "resolve_level",
]

REDACTED = "[redacted]"
PATIENT_FIELDS = frozenset(
    {
        "first_name",
        "firstName",
        "last_name",
        "lastName",
        "phone_number",
        "phoneNumber",
        "dob",
        "search",
    }
)

_current_request_id: ContextVar[str | None] = ContextVar(
    "patient_records_request_id", default=None
)
_sinks_installed = False
_service_name: str | None = None


def resolve_level(level: str | int) -> int:
    """Return the numeric logging level for a name such as ``"debug"``."""

    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(level.strip().upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    return numeric


def redact_patient_fields(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking patient demographic fields."""

    for key in PATIENT_FIELDS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def _render(record: Mapping[str, Any]) -> str:
    extra = record.get("extra") or {}
    request_id = extra.get("request_id") or "-"
    service = extra.get("service") or "-"
    # The returned string is itself formatted by loguru, so braces in the
    # JSON payload have to be doubled.
    message = str(record.get("message", "")).replace("{", "{{").replace("}", "}}")
    return (
        f"{record['time'].isoformat()} {record['level'].name:<8} "
        f"[{service}] ({request_id}) {message}\n"
    )


class _LoguruBridge(logging.Handler):
    """Forward stdlib records (structlog, uvicorn, SQLAlchemy) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - thin wrapper
        try:
            level: str | int = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        bound = loguru_logger.bind(logger=record.name)
        request_id = _current_request_id.get()
        if request_id is not None:
            bound = bound.bind(request_id=request_id)
        bound.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(
    *, service_name: str | None = None, level: str | int = "INFO"
) -> None:
    """Install the loguru sink and structlog pipeline once per process.

    Later calls only change the service name stamped on every entry.
    """

    global _sinks_installed, _service_name

    numeric_level = resolve_level(level)
    if not _sinks_installed:
        loguru_logger.remove()
        loguru_logger.add(
            sys.stdout,
            level=numeric_level,
            format=_render,
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )
        logging.basicConfig(handlers=[_LoguruBridge()], level=numeric_level, force=True)
        logging.captureWarnings(True)
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                redact_patient_fields,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        _sinks_installed = True

    if service_name:
        _service_name = service_name
        loguru_logger.configure(extra={"service": service_name})
        structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name) if name else structlog.get_logger()


def get_request_id() -> str | None:
    """Return the id of the request being served, if any."""

    return _current_request_id.get()


def generate_request_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def request_context(request_id: str | None = None, **extra: Any) -> Iterator[str]:
    """Bind a request id (minted when missing) plus ``extra`` for the block.

    ``correlation_id`` defaults to the request id. Values from an enclosing
    block are restored on exit.
    """

    rid = request_id or generate_request_id()
    values: dict[str, Any] = {"correlation_id": rid, **extra, "request_id": rid}
    if _service_name is not None:
        values.setdefault("service", _service_name)

    token = _current_request_id.set(rid)
    try:
        with structlog.contextvars.bound_contextvars(**values):
            with loguru_logger.contextualize(**values):
                yield rid
    finally:
        _current_request_id.reset(token)
