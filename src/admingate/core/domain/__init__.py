"""Domain models and enums."""

from admingate.core.domain.audit import (
    AuditAction,
    Severity,
    UnauthorizedReason,
    severity_for,
)
from admingate.core.domain.gate import GateDecision, RouteClass

__all__ = [
    "AuditAction",
    "GateDecision",
    "RouteClass",
    "Severity",
    "UnauthorizedReason",
    "severity_for",
]
