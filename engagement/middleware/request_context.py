"""Per-request ID, timing, and HTTP metrics.

The request ID (client-supplied X-Request-ID or a fresh UUID) is kept in
a ContextVar so every log line emitted while serving the request carries
it, including lines from bulk fan-out tasks, which copy the context when
they are created.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from engagement.core.metrics import REQUEST_COUNT, REQUEST_DURATION

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


def install_request_id_filter() -> None:
    """Attach the filter to every root handler (idempotent).

    Handler-level, so records from child loggers pick it up too.
    """
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, _RequestContextFilter) for f in handler.filters):
            handler.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(req_id)

        start = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.monotonic() - start
            if request.url.path != "/metrics":
                REQUEST_COUNT.labels(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=str(status_code),
                ).inc()
                REQUEST_DURATION.labels(
                    method=request.method, endpoint=request.url.path
                ).observe(duration)
            request_id_var.reset(token)

        duration_ms = round(duration * 1000, 1)
        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
