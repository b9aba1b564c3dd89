"""
HTTP request logging middleware.

One structured line per request. The request id and client address are
bound to structlog contextvars first, so every swap log written while
handling the request carries them too.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

# Polled by load balancers; logged at debug only
QUIET_PATHS = frozenset({"/healthz", "/"})

SLOW_REQUEST_MS = 5_000.0


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with timing, status and request id."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        client = request.client.host if request.client else None

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, client=client)

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)
            _level_for(request.url.path, status_code)(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=duration_ms,
                slow=duration_ms >= SLOW_REQUEST_MS,
            )


def _level_for(path: str, status_code: int):
    if status_code >= 500:
        return logger.error
    # Throttled quotes are expected traffic, not client bugs
    if status_code == 429:
        return logger.info
    if status_code >= 400:
        return logger.warning
    if path in QUIET_PATHS:
        return logger.debug
    return logger.info
