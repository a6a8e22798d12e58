"""Caller-facing failures: the closed error taxonomy and its RFC 7807 rendering.

Every failure a procedure can produce is a :class:`ProcedureError` subclass
carrying exactly one :class:`ErrorKind`. The HTTP status is a function of the
kind alone (see :data:`KIND_STATUS`); messages are for humans only.
"""

from __future__ import annotations

from enum import Enum
from http import HTTPStatus
from typing import Any, Mapping

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.observability.logger import get_logger

__all__ = [
    "KIND_STATUS",
    "ConflictError",
    "ErrorKind",
    "ForbiddenError",
    "InternalError",
    "InvalidInputError",
    "NotFoundError",
    "ProblemDetails",
    "ProblemDetailsException",
    "ProcedureError",
    "UnauthenticatedError",
    "register_exception_handlers",
]

logger = get_logger(__name__)

PROBLEM_TYPE_BASE = "https://patient-records.local/problems"
PROBLEM_MEDIA_TYPE = "application/problem+json"


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def slug(self) -> str:
        return self.value.lower().replace("_", "-")


KIND_STATUS: Mapping[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_INPUT: 422,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ProblemDetails(BaseModel):
    """RFC 7807 body, extended with the taxonomy ``kind`` and field ``errors``."""

    model_config = ConfigDict(extra="allow")

    type: str = "about:blank"
    title: str = "An error occurred"
    status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str | None = None
    instance: str | None = None
    kind: ErrorKind | None = Field(default=None, description="Taxonomy discriminator")
    errors: list[Any] | None = Field(default=None, description="Field-level validation errors")

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            self.model_dump(mode="json", exclude_none=True),
            status_code=self.status,
            media_type=PROBLEM_MEDIA_TYPE,
        )


class ProblemDetailsException(RuntimeError):
    """Exception that knows how to describe itself as :class:`ProblemDetails`."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    title: str = "Service Error"
    problem_type: str = "about:blank"

    def __init__(
        self, detail: str | None = None, *, extensions: Mapping[str, Any] | None = None
    ) -> None:
        self.detail = detail or self.title
        self.extensions: dict[str, Any] = dict(extensions or {})
        super().__init__(self.detail)

    def to_problem_details(self, *, instance: str | None = None) -> ProblemDetails:
        return ProblemDetails(
            type=self.problem_type,
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=instance,
            **self.extensions,
        )


class ProcedureError(ProblemDetailsException):
    """Failure leaving a procedure; subclasses pin down ``kind``."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    default_message = "An unexpected error occurred."

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.status_code = KIND_STATUS[cls.kind]
        cls.problem_type = f"{PROBLEM_TYPE_BASE}/{cls.kind.slug}"

    def __init__(
        self,
        message: str | None = None,
        *,
        errors: list[Any] | None = None,
        extensions: Mapping[str, Any] | None = None,
    ) -> None:
        self.errors = errors
        payload = {**(extensions or {}), "kind": self.kind}
        if errors is not None:
            payload["errors"] = errors
        super().__init__(message or self.default_message, extensions=payload)

    @property
    def message(self) -> str:
        return self.detail


class UnauthenticatedError(ProcedureError):
    kind = ErrorKind.UNAUTHENTICATED
    title = "Unauthenticated"
    default_message = "Authentication required"


class ForbiddenError(ProcedureError):
    kind = ErrorKind.FORBIDDEN
    title = "Forbidden"
    default_message = "Insufficient permissions"


class InvalidInputError(ProcedureError):
    kind = ErrorKind.INVALID_INPUT
    title = "Invalid Input"
    default_message = "One or more input values failed validation."


class NotFoundError(ProcedureError):
    kind = ErrorKind.NOT_FOUND
    title = "Not Found"
    default_message = "Resource not found"


class ConflictError(ProcedureError):
    kind = ErrorKind.CONFLICT
    title = "Conflict"
    default_message = "The request conflicts with an existing record"


class InternalError(ProcedureError):
    kind = ErrorKind.INTERNAL_ERROR
    title = "Internal Server Error"


def _phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "HTTP Error"


async def _on_problem(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ProblemDetailsException)
    return exc.to_problem_details(instance=str(request.url)).to_response()


async def _on_http_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    detail = exc.detail if isinstance(exc.detail, str) else None
    problem = ProblemDetails(
        title=_phrase(exc.status_code),
        status=exc.status_code,
        detail=detail,
        instance=str(request.url),
    )
    response = problem.to_response()
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def _on_request_validation(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    error = InvalidInputError(
        "One or more request parameters failed validation.",
        errors=jsonable_encoder(exc.errors()),
    )
    return error.to_problem_details(instance=str(request.url)).to_response()


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", error_type=type(exc).__name__, path=request.url.path)
    error = InternalError("An unexpected error occurred while processing the request.")
    return error.to_problem_details(instance=str(request.url)).to_response()


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error leaving ``app`` as problem details."""

    app.add_exception_handler(ProblemDetailsException, _on_problem)
    app.add_exception_handler(StarletteHTTPException, _on_http_error)
    app.add_exception_handler(RequestValidationError, _on_request_validation)
    app.add_exception_handler(Exception, _on_unhandled)
