"""Request tracing middleware.

Outermost middleware: binds a trace ID, then emits one request_complete
line per request with the resolved client IP and the gate decision (when
the edge gate ran). /health and /metrics are neither logged nor counted.
"""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from admingate.app.config import get_settings
from admingate.app.logging import clear_trace_context, set_trace_id
from admingate.app.metrics.collector import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL
from admingate.core.client_ip import resolve_client_ip
from admingate.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"

_ID_SEGMENT = re.compile(r"^(/api/admin/users/)[^/]+(/deactivate)$")

# Metric label values; anything else is reported as "other"
_ENDPOINTS = frozenset({
    "/admin",
    "/admin/unauthorized",
    "/api/admin/auth",
    "/api/admin/setup",
    "/api/admin/logs",
    "/api/admin/unauthorized-logs",
    "/api/admin/cleanup-sessions",
    "/api/admin/users",
    "/api/admin/users/:id/deactivate",
})

_UNTRACKED = frozenset({"/health", "/metrics"})


def endpoint_label(path: str) -> str:
    """Bounded-cardinality endpoint label for a request path."""
    path = _ID_SEGMENT.sub(r"\1:id\2", path)
    return path if path in _ENDPOINTS else "other"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Trace ID propagation, request metrics and the request log line.

    Usage:
        app.add_middleware(LoggingMiddleware)  # add last: runs first
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        trace_id = set_trace_id(request.headers.get(TRACE_HEADER))
        settings = get_settings()
        path = request.url.path
        fields = {
            "method": request.method,
            "path": path,
            "client_ip": resolve_client_ip(request.headers, settings.client_ip.headers),
            "trace_id": trace_id,
        }

        started = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Request failed",
                extra={
                    **fields,
                    "event": LogEvent.REQUEST_FAILED,
                    "duration_ms": (time.monotonic() - started) * 1000,
                },
            )
            clear_trace_context()
            raise

        elapsed = time.monotonic() - started
        if path not in _UNTRACKED:
            self._observe(request, response, elapsed, fields)

        clear_trace_context()
        response.headers[TRACE_HEADER] = trace_id
        return response

    def _observe(
        self, request: Request, response: Response, elapsed: float, fields: dict
    ) -> None:
        endpoint = endpoint_label(fields["path"])
        HTTP_REQUESTS_TOTAL.labels(
            method=request.method, endpoint=endpoint, status=str(response.status_code)
        ).inc()
        HTTP_REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(
            elapsed
        )

        duration_ms = elapsed * 1000
        fields = {
            **fields,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "gate_decision": getattr(request.state, "gate_decision", None),
        }
        logger.info("Request completed", extra={**fields, "event": LogEvent.REQUEST_COMPLETE})

        threshold_ms = get_settings().logging.slow_threshold_ms
        if duration_ms > threshold_ms:
            logger.warning(
                "Slow request detected",
                extra={**fields, "event": LogEvent.REQUEST_SLOW, "threshold_ms": threshold_ms},
            )
