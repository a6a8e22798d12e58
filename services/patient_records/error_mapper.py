"""Translate store and validation failures into the caller-facing taxonomy."""

from __future__ import annotations

from pydantic import ValidationError

from repositories.patients import RecordNotFoundError, UniqueViolationError
from shared.http.errors import (
    ConflictError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    ProcedureError,
)
from shared.observability.logger import get_logger

logger = get_logger(__name__)

PATIENT_NOT_FOUND = "Patient not found"
EMAIL_CONFLICT = "A patient with this email already exists"


def map_validation_error(error: ValidationError) -> InvalidInputError:
    """Wrap a pydantic :class:`ValidationError` with JSON-safe error details."""

    details = error.errors(include_url=False, include_context=False, include_input=False)
    return InvalidInputError(errors=[dict(item) for item in details])


def map_store_error(error: Exception, *, failure_message: str) -> ProcedureError:
    """Return the single taxonomy error ``error`` corresponds to.

    Classification is by exception type only: procedure errors pass through,
    missing records become ``NOT_FOUND``, uniqueness violations ``CONFLICT`` and
    everything else ``INTERNAL_ERROR`` carrying ``failure_message``.
    """

    if isinstance(error, ProcedureError):
        return error
    if isinstance(error, RecordNotFoundError):
        return NotFoundError(PATIENT_NOT_FOUND)
    if isinstance(error, UniqueViolationError):
        return ConflictError(EMAIL_CONFLICT)

    logger.exception(
        "store_failure_unclassified",
        error_type=type(error).__name__,
    )
    return InternalError(failure_message)


__all__ = [
    "EMAIL_CONFLICT",
    "PATIENT_NOT_FOUND",
    "map_store_error",
    "map_validation_error",
]
