"""Audit trail domain enums."""

from enum import StrEnum


class AuditAction(StrEnum):
    """admin_logs.action values."""

    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SESSION_EXPIRED = "session_expired"
    LOGOUT = "logout"
    SESSION_CLEANUP = "session_cleanup"
    SETUP_FAILURE = "setup_failure"
    ADMIN_USER_CREATED = "admin_user_created"
    ADMIN_USER_DEACTIVATED = "admin_user_deactivated"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class UnauthorizedReason(StrEnum):
    """admin_unauthorized.reason values."""

    NO_SESSION_TOKEN = "no_session_token"
    MALFORMED_SESSION_TOKEN = "malformed_session_token"
    INVALID_SESSION_TOKEN = "invalid_session_token"


_SEVERITY: dict[AuditAction, Severity] = {
    AuditAction.LOGIN_SUCCESS: Severity.LOW,
    AuditAction.LOGOUT: Severity.LOW,
    AuditAction.SESSION_CLEANUP: Severity.LOW,
    AuditAction.ADMIN_USER_CREATED: Severity.LOW,
    AuditAction.ADMIN_USER_DEACTIVATED: Severity.MEDIUM,
    AuditAction.SESSION_EXPIRED: Severity.MEDIUM,
    AuditAction.LOGIN_FAILURE: Severity.HIGH,
    AuditAction.RATE_LIMIT_EXCEEDED: Severity.HIGH,
    AuditAction.SETUP_FAILURE: Severity.HIGH,
}


def severity_for(action: AuditAction) -> Severity:
    return _SEVERITY.get(action, Severity.MEDIUM)
