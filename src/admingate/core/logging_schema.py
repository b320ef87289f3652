"""Logging field schema - v1.0

Standard fields (added to all logs):
- schema_version: Log schema version
- service: Service name (admingate)
- component: Component name (GATE, AUTH, SESSION, RATE_LIMIT, AUDIT, GEOIP)
- event: Event type (login_failed, gate_denied, etc.)
- trace_id: Request trace ID
- duration_ms: Duration in milliseconds

High cardinality fields (OK in logs, NOT in metric labels):
- client_ip: Resolved client IP
- username: Account username
- token_prefix: First 8 characters of a session token (never the full token)
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Standard log event types.

    Use these event types in the 'event' extra field for consistent
    log filtering and analysis.
    """

    # Auth events
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGIN_LOCKED = "login_locked"
    LOGOUT = "logout"
    SESSION_ISSUED = "session_issued"
    SESSION_REJECTED = "session_rejected"
    SESSION_CLEANUP = "session_cleanup"

    # Gate events
    GATE_ALLOWED = "gate_allowed"
    GATE_DENIED = "gate_denied"

    # Audit events
    AUDIT_WRITE_FAILED = "audit_write_failed"
    GEOIP_FAILED = "geoip_failed"

    # Storage events
    STORAGE_RETRY = "storage_retry"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    DB_CONNECTED = "db_connected"
    DB_ERROR = "db_error"
    REDIS_CONNECTED = "redis_connected"

    # Account events
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    SETUP_REJECTED = "setup_rejected"

    # Lifecycle events
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"

    # API events
    REQUEST_COMPLETE = "request_complete"
    REQUEST_FAILED = "request_failed"
    REQUEST_SLOW = "request_slow"


class ErrorClass(StrEnum):
    """Error classification for structured error logging.

    Use these in the 'error_class' extra field to enable
    filtering by error type and setting up alerts.
    """

    TRANSIENT = "transient"  # Retryable (network timeout, temp failure)
    PERMANENT = "permanent"  # Not retryable (invalid input, constraint)
    TIMEOUT = "timeout"  # Timeout error


class Component(StrEnum):
    """Component identifiers for log filtering."""

    GATE = "gate"  # Edge gate middleware
    AUTH = "auth"  # Login / status / logout glue
    SESSION = "session"  # Session manager
    RATE_LIMIT = "rate_limit"  # Rate limiter
    AUDIT = "audit"  # Audit logger
    GEOIP = "geoip"  # Geolocation enrichment
    API = "api"  # REST API
