"""HTTP helpers and the error taxonomy used across the service."""

from .errors import (
    ConflictError,
    ErrorKind,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    ProblemDetails,
    ProblemDetailsException,
    ProcedureError,
    UnauthenticatedError,
    register_exception_handlers,
)

__all__ = [
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
