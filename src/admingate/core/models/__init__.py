"""Database models for admin-gate.

Models are defined using SQLModel (SQLAlchemy + Pydantic).
"""

from admingate.core.models.audit import UNKNOWN, AuditLogEntry, UnauthorizedAccessEntry
from admingate.core.models.auth import (
    Account,
    AdminSession,
    RateLimitEntry,
    ensure_utc,
    generate_ulid,
    utc_now,
)

__all__ = [
    "Account",
    "AdminSession",
    "AuditLogEntry",
    "RateLimitEntry",
    "UnauthorizedAccessEntry",
    "UNKNOWN",
    "ensure_utc",
    "generate_ulid",
    "utc_now",
]
