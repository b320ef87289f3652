"""Tests for the login rate limiter (database and Redis stores)."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from admingate.app.config import SecurityConfig, get_settings
from admingate.core.errors import StorageUnavailableError
from admingate.core.models import RateLimitEntry
from admingate.core.models.auth import utc_now
from admingate.services.rate_limiter import (
    DatabaseRateLimitStore,
    LockStatus,
    RateLimiter,
    RedisRateLimitStore,
)

IP = "198.51.100.20"
CLOCK = "admingate.services.rate_limiter.utc_now"


class FakePipeline:
    """Queued commands applied all-or-nothing on execute (MULTI/EXEC)."""

    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._queued: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        def _queue(*args, **kwargs) -> "FakePipeline":
            self._queued.append((name, args, kwargs))
            return self

        return _queue

    async def execute(self) -> list:
        values, ttls = dict(self._redis.values), dict(self._redis.ttls)
        results = []
        try:
            for name, args, kwargs in self._queued:
                results.append(await getattr(self._redis, name)(*args, **kwargs))
        except Exception:
            self._redis.values, self._redis.ttls = values, ttls
            raise
        finally:
            self._queued = []
        return results


class FakeRedis:
    """Minimal in-memory stand-in for the redis commands the store uses."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def ttl(self, key: str) -> int:
        if key not in self.values:
            return -2
        return self.ttls.get(key, -1)

    async def incr(self, key: str) -> int:
        value = int(self.values.get(key, "0")) + 1
        self.values[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        if key not in self.values:
            return False
        self.ttls[key] = seconds
        return True

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def lapse(self, key: str) -> None:
        """Simulate key expiry."""
        self.values.pop(key, None)
        self.ttls.pop(key, None)


class FlakyExpireRedis(FakeRedis):
    """FakeRedis whose first EXPIRE times out (only for TTL only_ttl, when given)."""

    def __init__(self, only_ttl: int | None = None) -> None:
        super().__init__()
        self.expire_failures = 1
        self.only_ttl = only_ttl

    async def expire(self, key: str, seconds: int) -> bool:
        if self.expire_failures and self.only_ttl in (None, seconds):
            self.expire_failures -= 1
            raise RedisTimeoutError("expire timed out")
        return await super().expire(key, seconds)


@pytest.fixture
def policy() -> SecurityConfig:
    return get_settings().security


@pytest.fixture
def db_limiter(session_factory, policy) -> RateLimiter:
    return RateLimiter(DatabaseRateLimitStore(session_factory), policy)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_limiter(fake_redis, policy) -> RateLimiter:
    return RateLimiter(RedisRateLimitStore(fake_redis), policy)


class TestLockStatus:
    @pytest.mark.parametrize(
        "seconds,minutes", [(1, 1), (60, 1), (61, 2), (899, 15), (900, 15)]
    )
    def test_remaining_minutes_rounds_up(self, seconds: int, minutes: int) -> None:
        assert LockStatus(locked=True, remaining_seconds=seconds).remaining_minutes == minutes


class TestDatabaseRateLimiter:
    async def test_unknown_ip_is_not_locked(self, db_limiter) -> None:
        status = await db_limiter.check_locked(IP)
        assert status.locked is False
        assert status.remaining_seconds == 0

    async def test_count_starts_at_one(self, db_limiter) -> None:
        assert await db_limiter.record_failure(IP) == 1
        assert await db_limiter.record_failure(IP) == 2

    async def test_locks_at_max_attempts(self, db_limiter, policy) -> None:
        for _ in range(policy.max_login_attempts):
            await db_limiter.record_failure(IP)

        status = await db_limiter.check_locked(IP)
        assert status.locked is True
        assert 0 < status.remaining_seconds <= policy.lockout_duration
        assert status.remaining_minutes == 15

    async def test_below_max_is_not_locked(self, db_limiter, policy) -> None:
        for _ in range(policy.max_login_attempts - 1):
            await db_limiter.record_failure(IP)

        assert (await db_limiter.check_locked(IP)).locked is False

    async def test_ips_are_independent(self, db_limiter, policy) -> None:
        for _ in range(policy.max_login_attempts):
            await db_limiter.record_failure(IP)

        assert (await db_limiter.check_locked("198.51.100.21")).locked is False
        assert await db_limiter.record_failure("198.51.100.21") == 1

    async def test_clear_restarts_count_at_one(self, db_limiter, policy) -> None:
        for _ in range(policy.max_login_attempts):
            await db_limiter.record_failure(IP)

        await db_limiter.clear(IP)

        assert (await db_limiter.check_locked(IP)).locked is False
        assert await db_limiter.record_failure(IP) == 1

    async def test_lock_expires(self, db_limiter, policy) -> None:
        t0 = utc_now()
        with patch(CLOCK, return_value=t0):
            for _ in range(policy.max_login_attempts):
                await db_limiter.record_failure(IP)

        later = t0 + timedelta(seconds=policy.lockout_duration + 1)
        with patch(CLOCK, return_value=later):
            assert (await db_limiter.check_locked(IP)).locked is False
            # Count restarts once the lockout has run out
            assert await db_limiter.record_failure(IP) == 1

    async def test_purge_stale_keeps_recent_and_locked(
        self, db_limiter, session_factory, policy
    ) -> None:
        t0 = utc_now()
        with patch(CLOCK, return_value=t0 - timedelta(days=2)):
            await db_limiter.record_failure("198.51.100.30")
        with patch(CLOCK, return_value=t0):
            await db_limiter.record_failure("198.51.100.31")
            for _ in range(policy.max_login_attempts):
                await db_limiter.record_failure("198.51.100.32")

            assert await db_limiter.purge_stale(timedelta(days=1)) == 1

        async with session_factory() as db:
            assert await db.get(RateLimitEntry, "198.51.100.30") is None
            assert await db.get(RateLimitEntry, "198.51.100.31") is not None
            assert await db.get(RateLimitEntry, "198.51.100.32") is not None

    async def test_storage_failure_fails_closed(self, policy) -> None:
        store = AsyncMock()
        store.get.side_effect = StorageUnavailableError()
        limiter = RateLimiter(store, policy)

        with pytest.raises(StorageUnavailableError):
            await limiter.check_locked(IP)


class TestRedisRateLimiter:
    async def test_count_starts_at_one(self, redis_limiter) -> None:
        assert await redis_limiter.record_failure(IP) == 1
        assert await redis_limiter.record_failure(IP) == 2

    async def test_locks_at_max_attempts(self, redis_limiter, fake_redis, policy) -> None:
        for _ in range(policy.max_login_attempts):
            await redis_limiter.record_failure(IP)

        status = await redis_limiter.check_locked(IP)
        assert status.locked is True
        assert status.remaining_seconds == policy.lockout_duration
        assert fake_redis.ttls[f"{get_settings().redis.key_prefix}:lock:{IP}"] == (
            policy.lockout_duration
        )

    async def test_clear_deletes_both_keys(self, redis_limiter, fake_redis, policy) -> None:
        for _ in range(policy.max_login_attempts):
            await redis_limiter.record_failure(IP)

        await redis_limiter.clear(IP)

        assert fake_redis.values == {}
        assert await redis_limiter.record_failure(IP) == 1

    async def test_count_restarts_after_lock_lapses(
        self, redis_limiter, fake_redis, policy
    ) -> None:
        prefix = get_settings().redis.key_prefix
        for _ in range(policy.max_login_attempts):
            await redis_limiter.record_failure(IP)

        fake_redis.lapse(f"{prefix}:lock:{IP}")
        fake_redis.lapse(f"{prefix}:count:{IP}")

        assert (await redis_limiter.check_locked(IP)).locked is False
        assert await redis_limiter.record_failure(IP) == 1

    async def test_purge_stale_is_noop(self, redis_limiter) -> None:
        assert await redis_limiter.purge_stale() == 0

    async def test_connection_error_surfaces_as_storage_unavailable(
        self, policy, monkeypatch
    ) -> None:
        monkeypatch.setattr(get_settings().security, "storage_retry_backoff", 0.0)
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("refused")
        pipe = MagicMock()
        pipe.execute = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.pipeline = MagicMock(return_value=pipe)
        limiter = RateLimiter(RedisRateLimitStore(client), policy)

        with pytest.raises(StorageUnavailableError):
            await limiter.check_locked(IP)
        with pytest.raises(StorageUnavailableError):
            await limiter.record_failure(IP)

    async def test_retried_write_counts_one_failure(self, policy, monkeypatch) -> None:
        monkeypatch.setattr(get_settings().security, "storage_retry_backoff", 0.0)
        client = FlakyExpireRedis()
        limiter = RateLimiter(RedisRateLimitStore(client), policy)

        assert await limiter.record_failure(IP) == 1
        assert client.values[f"{get_settings().redis.key_prefix}:count:{IP}"] == "1"

    async def test_retried_lock_write_keeps_count(self, policy, monkeypatch) -> None:
        monkeypatch.setattr(get_settings().security, "storage_retry_backoff", 0.0)
        client = FlakyExpireRedis(only_ttl=policy.lockout_duration)
        limiter = RateLimiter(RedisRateLimitStore(client), policy)

        for attempt in range(1, policy.max_login_attempts + 1):
            assert await limiter.record_failure(IP) == attempt

        prefix = get_settings().redis.key_prefix
        assert client.expire_failures == 0
        assert client.values[f"{prefix}:count:{IP}"] == str(policy.max_login_attempts)
        assert client.ttls[f"{prefix}:lock:{IP}"] == policy.lockout_duration
        assert (await limiter.check_locked(IP)).locked is True
