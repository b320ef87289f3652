"""Login rate limiter with per-IP lockout.

Counts failed logins per client IP. Reaching SECURITY_MAX_LOGIN_ATTEMPTS
locks the IP out for SECURITY_LOCKOUT_DURATION seconds; a successful login
clears the entry. Once a lockout has expired, the next failure starts the
count again at 1.

Two counter stores:
- DatabaseRateLimitStore: admin_rate_limit table, read then upsert. Two
  concurrent failures from one IP may both read the same count and
  under-count by one; acceptable for coarse throttling.
- RedisRateLimitStore: INCR counter plus a lock key with TTL, each write
  one MULTI/EXEC transaction.

Selected by SECURITY_RATE_LIMIT_BACKEND.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import redis.asyncio as redis
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col

from admingate.app.config import RedisConfig, SecurityConfig, get_settings
from admingate.app.metrics.collector import LOCKOUTS_TOTAL
from admingate.core.logging_schema import Component, LogEvent
from admingate.core.models import RateLimitEntry
from admingate.core.models.auth import ensure_utc, utc_now
from admingate.core.retryable import storage_guard
from admingate.infra.database import get_session_factory
from admingate.infra.redis import get_redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockStatus:
    locked: bool
    remaining_seconds: int = 0

    @property
    def remaining_minutes(self) -> int:
        """Remaining lockout rounded up to whole minutes."""
        return math.ceil(self.remaining_seconds / 60)


UNLOCKED = LockStatus(locked=False)


def _lock_status(entry: RateLimitEntry | None, now: datetime) -> LockStatus:
    if entry is None or entry.locked_until is None:
        return UNLOCKED
    remaining = (ensure_utc(entry.locked_until) - now).total_seconds()
    if remaining <= 0:
        return UNLOCKED
    return LockStatus(locked=True, remaining_seconds=math.ceil(remaining))


class RateLimitStore(Protocol):
    """Counter store for failed login attempts."""

    async def get(self, ip: str) -> RateLimitEntry | None: ...

    async def record_failure(
        self, ip: str, now: datetime, policy: SecurityConfig
    ) -> RateLimitEntry: ...

    async def delete(self, ip: str) -> None: ...

    async def purge_stale(self, cutoff: datetime, now: datetime) -> int: ...


# =============================================================================
# Database store
# =============================================================================


class DatabaseRateLimitStore:
    """admin_rate_limit table, one row per IP."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, ip: str) -> RateLimitEntry | None:
        async def _get() -> RateLimitEntry | None:
            async with self._session_factory() as db:
                return await db.get(RateLimitEntry, ip)

        return await storage_guard(_get)

    async def record_failure(
        self, ip: str, now: datetime, policy: SecurityConfig
    ) -> RateLimitEntry:
        current = await self.get(ip)

        if current is None or (
            current.locked_until is not None and ensure_utc(current.locked_until) <= now
        ):
            attempts = 1
        else:
            attempts = current.failed_attempts + 1

        locked_until = None
        if attempts >= policy.max_login_attempts:
            locked_until = now + timedelta(seconds=policy.lockout_duration)

        entry = RateLimitEntry(
            ip_address=ip,
            failed_attempts=attempts,
            locked_until=locked_until,
            last_attempt=now,
        )
        await self._upsert(entry)
        return entry

    async def _upsert(self, entry: RateLimitEntry) -> None:
        values = {
            "ip_address": entry.ip_address,
            "failed_attempts": entry.failed_attempts,
            "locked_until": entry.locked_until,
            "last_attempt": entry.last_attempt,
        }

        async def _write() -> None:
            async with self._session_factory() as db:
                dialect = db.get_bind().dialect.name
                insert = pg_insert if dialect == "postgresql" else sqlite_insert
                stmt = insert(RateLimitEntry).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["ip_address"],
                    set_={
                        "failed_attempts": stmt.excluded.failed_attempts,
                        "locked_until": stmt.excluded.locked_until,
                        "last_attempt": stmt.excluded.last_attempt,
                    },
                )
                await db.execute(stmt)
                await db.commit()

        await storage_guard(_write, retry=True)

    async def delete(self, ip: str) -> None:
        async def _delete() -> None:
            async with self._session_factory() as db:
                await db.execute(
                    delete(RateLimitEntry).where(col(RateLimitEntry.ip_address) == ip)
                )
                await db.commit()

        await storage_guard(_delete, retry=True)

    async def purge_stale(self, cutoff: datetime, now: datetime) -> int:
        async def _purge() -> int:
            async with self._session_factory() as db:
                result = await db.execute(
                    delete(RateLimitEntry).where(
                        col(RateLimitEntry.last_attempt) < cutoff,
                        (col(RateLimitEntry.locked_until).is_(None))
                        | (col(RateLimitEntry.locked_until) <= now),
                    )
                )
                await db.commit()
                return result.rowcount or 0

        return await storage_guard(_purge, retry=True)


# =============================================================================
# Redis store
# =============================================================================


class RedisRateLimitStore:
    """Redis counters.

    Keys:
        {prefix}:count:{ip} - failure counter (INCR), expires after retention
        {prefix}:lock:{ip}  - present while locked out, TTL = lockout duration

    When the lock is set, the counter is given the same TTL so the count
    restarts once the lockout ends. Stale entries expire on their own.
    """

    def __init__(self, client: redis.Redis, config: RedisConfig | None = None) -> None:
        self._client = client
        self._prefix = (config or get_settings().redis).key_prefix

    def _count_key(self, ip: str) -> str:
        return f"{self._prefix}:count:{ip}"

    def _lock_key(self, ip: str) -> str:
        return f"{self._prefix}:lock:{ip}"

    async def get(self, ip: str) -> RateLimitEntry | None:
        async def _get() -> RateLimitEntry | None:
            count = await self._client.get(self._count_key(ip))
            lock_ttl = await self._client.ttl(self._lock_key(ip))
            if count is None and lock_ttl <= 0:
                return None
            now = utc_now()
            return RateLimitEntry(
                ip_address=ip,
                failed_attempts=int(count or 0),
                locked_until=now + timedelta(seconds=lock_ttl) if lock_ttl > 0 else None,
                last_attempt=now,
            )

        return await storage_guard(_get)

    async def record_failure(
        self, ip: str, now: datetime, policy: SecurityConfig
    ) -> RateLimitEntry:
        count_key = self._count_key(ip)

        async def _incr() -> int:
            # INCR and EXPIRE apply together or not at all
            pipe = self._client.pipeline(transaction=True)
            pipe.incr(count_key)
            pipe.expire(count_key, policy.rate_limit_retention)
            attempts, _ = await pipe.execute()
            return int(attempts)

        attempts = await storage_guard(_incr, retry=True)

        locked_until = None
        if attempts >= policy.max_login_attempts:
            locked_until = now + timedelta(seconds=policy.lockout_duration)

            async def _lock() -> None:
                pipe = self._client.pipeline(transaction=True)
                pipe.set(self._lock_key(ip), str(attempts), ex=policy.lockout_duration)
                pipe.expire(count_key, policy.lockout_duration)
                await pipe.execute()

            await storage_guard(_lock, retry=True)

        return RateLimitEntry(
            ip_address=ip,
            failed_attempts=attempts,
            locked_until=locked_until,
            last_attempt=now,
        )

    async def delete(self, ip: str) -> None:
        async def _delete() -> None:
            await self._client.delete(self._count_key(ip), self._lock_key(ip))

        await storage_guard(_delete, retry=True)

    async def purge_stale(self, cutoff: datetime, now: datetime) -> int:
        # Keys carry their own TTL
        return 0


# =============================================================================
# Rate limiter
# =============================================================================


class RateLimiter:
    """Per-IP failed login throttling.

    Policy (max attempts, lockout duration, retention) comes from
    SecurityConfig. Storage failures raise StorageUnavailableError so
    callers fail closed.
    """

    def __init__(self, store: RateLimitStore, policy: SecurityConfig | None = None) -> None:
        self._store = store
        self._policy = policy or get_settings().security

    async def check_locked(self, ip: str) -> LockStatus:
        entry = await self._store.get(ip)
        return _lock_status(entry, utc_now())

    async def record_failure(self, ip: str) -> int:
        """Record one failed login.

        Returns:
            The new failure count for ip
        """
        now = utc_now()
        entry = await self._store.record_failure(ip, now, self._policy)

        if entry.locked_until is not None:
            LOCKOUTS_TOTAL.inc()
            logger.warning(
                "Client locked out after %d failed logins",
                entry.failed_attempts,
                extra={
                    "event": LogEvent.LOGIN_LOCKED,
                    "component": Component.RATE_LIMIT,
                    "client_ip": ip,
                    "lockout_seconds": self._policy.lockout_duration,
                },
            )
        return entry.failed_attempts

    async def clear(self, ip: str) -> None:
        await self._store.delete(ip)

    async def purge_stale(self, older_than: timedelta | None = None) -> int:
        """Delete unlocked entries whose last attempt is older than the window.

        Args:
            older_than: Retention window (default SECURITY_RATE_LIMIT_RETENTION)

        Returns:
            Number of entries deleted
        """
        if older_than is None:
            older_than = timedelta(seconds=self._policy.rate_limit_retention)
        now = utc_now()
        return await self._store.purge_stale(now - older_than, now)


# =============================================================================
# Global Instance Management
# =============================================================================

_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the RateLimiter for the configured backend."""
    global _rate_limiter

    if _rate_limiter is None:
        if get_settings().security.rate_limit_backend == "redis":
            store: RateLimitStore = RedisRateLimitStore(get_redis())
        else:
            store = DatabaseRateLimitStore(get_session_factory())
        _rate_limiter = RateLimiter(store)

    return _rate_limiter


def reset_rate_limiter() -> None:
    """Reset rate limiter (for testing or reconnection)."""
    global _rate_limiter
    _rate_limiter = None
