"""Authentication models (Account, AdminSession, RateLimitEntry).

Models are defined using SQLModel (SQLAlchemy + Pydantic). Rows are
returned as these typed records straight from the storage layer.
"""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel
from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Account(SQLModel, table=True):
    """Admin account. Never deleted, only deactivated."""

    __tablename__ = "admin_users"

    id: str = Field(default_factory=generate_ulid, primary_key=True)
    username: str = Field(unique=True, index=True, max_length=20)
    password_hash: str
    salt: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True))
    )
    last_login: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )


class AdminSession(SQLModel, table=True):
    """Login session bound to the client IP it was issued to."""

    __tablename__ = "admin_sessions"

    token: str = Field(primary_key=True, max_length=64)
    user_id: str = Field(foreign_key="admin_users.id", index=True)
    ip_address: str
    user_agent: str = Field(default="unknown")
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True))
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    is_active: bool = Field(default=True)


class RateLimitEntry(SQLModel, table=True):
    """Failed login counter per client IP."""

    __tablename__ = "admin_rate_limit"

    ip_address: str = Field(primary_key=True)
    failed_attempts: int = Field(default=0)
    locked_until: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    last_attempt: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True))
    )
