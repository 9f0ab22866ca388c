"""
Request access logging with correlation IDs.

Every request gets a correlation ID (taken from the caller or generated),
bound to structlog contextvars so the case workflow's log lines can be tied
to the HTTP call that triggered them. One `http_request` entry is written
per request instead of Uvicorn's access log.
"""

import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger(__name__)

CORRELATION_HEADERS = ("X-Correlation-ID", "X-Request-ID")
SLOW_REQUEST_MS = 1000


def request_correlation_id(request: Request) -> str:
    for header in CORRELATION_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return str(uuid.uuid4())


def level_for_status(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    return "info"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    Structured access log.

    Chat service calls made while provisioning a case can take seconds, so
    requests over SLOW_REQUEST_MS are flagged in the entry.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request_correlation_id(request)
        bind_contextvars(correlation_id=correlation_id, request_id=correlation_id)
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        status_code = 500
        error: Optional[Exception] = None

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            error = e
            logger.exception(
                "request_failed_unhandled",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__
            )
            raise
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            getattr(logger, level_for_status(status_code))(
                "http_request",
                method=request.method,
                path=request.url.path,
                query=request.url.query or None,
                status_code=status_code,
                duration_ms=duration_ms,
                slow_request=duration_ms > SLOW_REQUEST_MS,
                client_ip=request.client.host if request.client else None,
                error_type=type(error).__name__ if error else None,
            )
            clear_contextvars()

        for header in CORRELATION_HEADERS:
            response.headers[header] = correlation_id
        return response
