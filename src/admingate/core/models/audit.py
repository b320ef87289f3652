"""Audit trail models (append-only).

ULID primary keys sort in insertion order.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel

from admingate.core.models.auth import generate_ulid, utc_now

UNKNOWN = "unknown"


class AuditLogEntry(SQLModel, table=True):
    """Security event (login, logout, lockout, session expiry, ...)."""

    __tablename__ = "admin_logs"

    id: str = Field(default_factory=generate_ulid, primary_key=True)
    action: str = Field(index=True)
    data: str | None = Field(default=None, sa_column=Column(Text))  # JSON envelope
    ip_address: str = Field(default=UNKNOWN)
    user_agent: str = Field(default=UNKNOWN)
    timestamp: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), index=True)
    )


class UnauthorizedAccessEntry(SQLModel, table=True):
    """Denied request to a protected route, with best-effort geolocation.

    Geo fields are never null: failed lookups store "unknown".
    """

    __tablename__ = "admin_unauthorized"

    id: str = Field(default_factory=generate_ulid, primary_key=True)
    ip_address: str = Field(default=UNKNOWN)
    user_agent: str = Field(default=UNKNOWN)
    path: str
    reason: str
    country: str = Field(default=UNKNOWN)
    region: str = Field(default=UNKNOWN)
    city: str = Field(default=UNKNOWN)
    isp: str = Field(default=UNKNOWN)
    referer: str | None = None
    timestamp: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), index=True)
    )
