"""Tests for JSON logging."""

import json
import logging

from admingate.app.logging import (
    REDACTED,
    CustomJsonFormatter,
    RateLimitFilter,
    clear_trace_context,
    component_for,
    set_trace_id,
)
from admingate.app.middleware.logging import endpoint_label


def _record(name: str = "admingate.services.auth_service", msg: str = "Login failed", **extra):
    record = logging.LogRecord(name, logging.INFO, __file__, 10, msg, None, None)
    record.__dict__.update(extra)
    return record


class TestFormatter:
    def test_standard_fields(self) -> None:
        set_trace_id("trace-123")
        try:
            line = json.loads(CustomJsonFormatter().format(_record(event="login_failed")))
        finally:
            clear_trace_context()

        assert line["message"] == "Login failed"
        assert line["level"] == "INFO"
        assert line["service"] == "admingate"
        assert line["schema_version"] == "1.0"
        assert line["trace_id"] == "trace-123"
        assert line["event"] == "login_failed"

    def test_component_from_logger_name(self) -> None:
        line = json.loads(CustomJsonFormatter().format(_record()))
        assert line["component"] == "auth"

    def test_explicit_component_wins(self) -> None:
        line = json.loads(CustomJsonFormatter().format(_record(component="gate")))
        assert line["component"] == "gate"

    def test_secrets_redacted(self) -> None:
        line = json.loads(
            CustomJsonFormatter().format(
                _record(password="hunter2", token="ab" * 32, token_prefix="abababab...")
            )
        )

        assert line["password"] == REDACTED
        assert line["token"] == REDACTED
        assert line["token_prefix"] == "abababab..."


def test_component_for_unknown_logger() -> None:
    assert component_for("sqlalchemy.engine") is None
    assert component_for("admingate.infra.geoip") == "geoip"


class TestRateLimitFilter:
    def test_caps_identical_events(self) -> None:
        log_filter = RateLimitFilter(rate_per_minute=3)

        results = [log_filter.filter(_record(event="login_failed")) for _ in range(6)]

        # 3 allowed, then one marked line, then dropped
        assert results == [True, True, True, True, False, False]

    def test_marker_on_first_suppressed_line(self) -> None:
        log_filter = RateLimitFilter(rate_per_minute=1)
        log_filter.filter(_record(event="login_failed"))

        marked = _record(event="login_failed")
        log_filter.filter(marked)

        assert marked.msg.startswith("[RATE LIMITED]")

    def test_errors_always_pass(self) -> None:
        log_filter = RateLimitFilter(rate_per_minute=1)
        record = _record()
        record.levelno = logging.ERROR

        assert all(log_filter.filter(record) for _ in range(5))

    def test_events_counted_separately(self) -> None:
        log_filter = RateLimitFilter(rate_per_minute=1)

        assert log_filter.filter(_record(event="login_failed"))
        assert log_filter.filter(_record(event="logout"))


def test_endpoint_label_bounds_cardinality() -> None:
    assert endpoint_label("/api/admin/users/01ARZ3NDEK/deactivate") == (
        "/api/admin/users/:id/deactivate"
    )
    assert endpoint_label("/api/admin/logs") == "/api/admin/logs"
    assert endpoint_label("/wp-login.php") == "other"


async def test_trace_id_echoed(client) -> None:
    response = await client.get("/api/admin/setup", headers={"x-trace-id": "abc-123"})

    assert response.headers["x-trace-id"] == "abc-123"
