"""Structured JSON logging for admin-gate.

Every line is a JSON object (python-json-logger) carrying the schema
fields from core.logging_schema plus the request trace_id. Credential
material never reaches the output: known secret fields are redacted by
the formatter, and session tokens are only ever logged as token_prefix.
"""

import logging
import sys
import time
from collections import defaultdict
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pythonjsonlogger import jsonlogger

from admingate.app.config import get_settings
from admingate.core.logging_schema import Component

trace_id_ctx: ContextVar[str | None] = ContextVar("trace_id", default=None)

REDACTED = "[REDACTED]"
_SECRET_FIELDS = frozenset({"password", "token", "session_token", "setup_key", "cookie"})

# Logger name prefix -> component, for records that do not set one
_COMPONENTS: tuple[tuple[str, Component], ...] = (
    ("admingate.app.middleware.gate", Component.GATE),
    ("admingate.app.api", Component.API),
    ("admingate.services.auth_service", Component.AUTH),
    ("admingate.services.account_service", Component.AUTH),
    ("admingate.services.session_service", Component.SESSION),
    ("admingate.services.rate_limiter", Component.RATE_LIMIT),
    ("admingate.services.audit_service", Component.AUDIT),
    ("admingate.infra.geoip", Component.GEOIP),
)


def get_trace_id() -> str | None:
    return trace_id_ctx.get()


def set_trace_id(trace_id: str | None = None) -> str:
    """Bind a trace ID to the current request context.

    Args:
        trace_id: Incoming X-Trace-ID value; a UUID4 is generated when empty

    Returns:
        The bound trace ID
    """
    tid = trace_id or str(uuid4())
    trace_id_ctx.set(tid)
    return tid


def clear_trace_context() -> None:
    trace_id_ctx.set(None)


def component_for(logger_name: str) -> str | None:
    for prefix, component in _COMPONENTS:
        if logger_name.startswith(prefix):
            return component.value
    return None


class RateLimitFilter(logging.Filter):
    """Caps identical log lines at rate_per_minute.

    Lines are keyed by logger and event (or the format string when no event
    is set), so a password spraying run produces a bounded number of
    login_failed lines. ERROR and above always pass. The first suppressed
    line of a key is emitted once with a [RATE LIMITED] marker.
    """

    def __init__(self, rate_per_minute: int = 100) -> None:
        super().__init__()
        self.rate_per_minute = rate_per_minute
        self._seen: dict[str, list[float]] = defaultdict(list)
        self._marked: set[str] = set()

    def _key(self, record: logging.LogRecord) -> str:
        event = getattr(record, "event", None)
        return f"{record.name}:{event or record.msg}"

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True

        key = self._key(record)
        now = time.time()
        window = [t for t in self._seen[key] if now - t < 60]
        self._seen[key] = window

        if len(window) < self.rate_per_minute:
            if len(window) < self.rate_per_minute // 2:
                self._marked.discard(key)
            window.append(now)
            return True

        if key in self._marked:
            return False
        self._marked.add(key)
        record.msg = f"[RATE LIMITED] {record.msg} (max {self.rate_per_minute}/min)"
        window.append(now)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding schema, service, component and trace fields.

    Fields named in _SECRET_FIELDS are replaced with REDACTED.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        settings = get_settings().logging
        self._schema_version = settings.schema_version
        self._service = settings.service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["lineno"] = record.lineno
        log_record["schema_version"] = self._schema_version
        log_record["service"] = self._service

        if "component" not in log_record:
            component = component_for(record.name)
            if component:
                log_record["component"] = component

        if trace_id := get_trace_id():
            log_record.setdefault("trace_id", trace_id)

        for field in _SECRET_FIELDS.intersection(log_record):
            log_record[field] = REDACTED

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        log_record.pop("color_message", None)


def setup_logging(level: int | None = None) -> None:
    """Install the JSON handler on the root and uvicorn loggers.

    Args:
        level: Log level; defaults to LOGGING_LEVEL
    """
    settings = get_settings().logging

    if level is None:
        level = getattr(logging, settings.level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter())
    handler.addFilter(RateLimitFilter(settings.rate_limit_per_minute))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in ("uvicorn", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = False
        uv_logger.addHandler(handler)

    # LoggingMiddleware emits the request line
    logging.getLogger("uvicorn.access").disabled = True

    # One line per geolocation request otherwise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
