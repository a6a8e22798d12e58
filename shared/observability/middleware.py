"""Per-request correlation ids and access logging for the FastAPI app."""

from __future__ import annotations

import time
from typing import Awaitable, Callable, Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .logger import generate_request_id, get_logger, request_context

__all__ = ["RequestContextMiddleware"]

MAX_REQUEST_ID_LENGTH = 128
DEFAULT_ID_HEADERS = ("X-Request-ID", "X-Correlation-ID")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the whole call and log one access line per request.

    The id is taken from the first non-empty header in ``id_headers`` (trimmed
    to :data:`MAX_REQUEST_ID_LENGTH`) or minted, stored on ``request.state``
    and echoed back under every header name in ``id_headers``.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        id_headers: Sequence[str] = DEFAULT_ID_HEADERS,
        timing_header: str | None = "X-Response-Time",
    ) -> None:
        super().__init__(app)
        self._id_headers = tuple(id_headers)
        self._timing_header = timing_header
        self._logger = get_logger("http")

    def _incoming_id(self, request: Request) -> str:
        for header in self._id_headers:
            value = (request.headers.get(header) or "").strip()
            if value:
                return value[:MAX_REQUEST_ID_LENGTH]
        return generate_request_id()

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = self._incoming_id(request)
        request.state.request_id = request_id
        started = time.perf_counter()

        with request_context(request_id=request_id):
            log = self._logger.bind(method=request.method, path=request.url.path)
            try:
                response = await call_next(request)
            except Exception:
                log.exception(
                    "http_request_failed",
                    duration_ms=round((time.perf_counter() - started) * 1000.0, 3),
                )
                raise
            elapsed = time.perf_counter() - started
            log.info(
                "http_request_completed",
                status_code=response.status_code,
                duration_ms=round(elapsed * 1000.0, 3),
            )

        for header in self._id_headers:
            response.headers.setdefault(header, request_id)
        if self._timing_header:
            response.headers[self._timing_header] = f"{elapsed:.6f}s"
        return response
