"""Storage error classification with fixed-backoff retry.

Classifies credential store errors as retryable (transient) or
non-retryable (permanent) and translates them into StorageUnavailableError
at the service boundary.

Only write paths retry, a small fixed number of times with a short fixed
delay. Reads fail straight to StorageUnavailableError.

Usage:
    from admingate.core.retryable import storage_guard

    # Read: translate storage errors, no retry
    row = await storage_guard(lambda: db.get(Account, account_id))

    # Write: retry transient errors, rolling back between attempts
    await storage_guard(lambda: _insert(db, row), retry=True, on_retry=db.rollback)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from admingate.app.config import get_settings
from admingate.app.metrics.collector import STORAGE_FAILURES_TOTAL, STORAGE_RETRIES_TOTAL
from admingate.core.errors import StorageUnavailableError
from admingate.core.logging_schema import ErrorClass, LogEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORAGE_ERRORS = (SQLAlchemyError, RedisError, asyncio.TimeoutError, TimeoutError)

RETRYABLE = (
    asyncio.TimeoutError,
    TimeoutError,
    PoolTimeoutError,
    OperationalError,
    InterfaceError,
    RedisConnectionError,
    RedisTimeoutError,
)


def is_storage_error(exc: BaseException) -> bool:
    """Check if exception originates from the credential or counter store."""
    return isinstance(exc, STORAGE_ERRORS)


def is_retryable(exc: BaseException) -> bool:
    """Check if storage error is retryable (transient).

    Args:
        exc: Exception to classify

    Returns:
        True if error is transient and the statement can be re-issued
    """
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, RETRYABLE):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


def classify_error(exc: BaseException) -> ErrorClass:
    """Classify error as transient, timeout or permanent."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, PoolTimeoutError, RedisTimeoutError)):
        return ErrorClass.TIMEOUT
    if is_retryable(exc):
        return ErrorClass.TRANSIENT
    return ErrorClass.PERMANENT


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    delay: float = 0.1,
    on_retry: Callable[[], Awaitable[object]] | None = None,
) -> T:
    """Execute async operation with fixed-backoff retry.

    Only retries retryable errors; anything else is raised immediately.

    Args:
        coro_factory: Factory function that creates new coroutine for each attempt
        max_retries: Retry attempts after the first try (default: 2)
        delay: Fixed delay between attempts in seconds (default: 0.1)
        on_retry: Awaited before each retry (e.g. AsyncSession.rollback)

    Returns:
        Result of successful operation

    Raises:
        Exception: The last exception if all retries fail, or immediately
                   for non-retryable errors
    """
    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except Exception as exc:
            if not is_retryable(exc) or attempt == max_retries:
                raise

            STORAGE_RETRIES_TOTAL.inc()
            logger.warning(
                "Retryable storage error (attempt %d/%d, retry in %.2fs): %s",
                attempt + 1,
                max_retries + 1,
                delay,
                exc,
                extra={
                    "event": LogEvent.STORAGE_RETRY,
                    "error_class": classify_error(exc),
                    "attempt": attempt + 1,
                },
            )
            if on_retry is not None:
                await on_retry()
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected state in with_retry")


async def storage_guard(
    coro_factory: Callable[[], Awaitable[T]],
    *,
    retry: bool = False,
    on_retry: Callable[[], Awaitable[object]] | None = None,
) -> T:
    """Run a storage operation, surfacing storage failures as StorageUnavailableError.

    Args:
        coro_factory: Factory for the storage coroutine
        retry: Retry transient errors (write paths only)
        on_retry: Awaited before each retry

    Raises:
        StorageUnavailableError: The store failed (after retries, for writes)
    """
    try:
        if retry:
            policy = get_settings().security
            return await with_retry(
                coro_factory,
                max_retries=policy.storage_retry_attempts,
                delay=policy.storage_retry_backoff,
                on_retry=on_retry,
            )
        return await coro_factory()
    except StorageUnavailableError:
        raise
    except Exception as exc:
        # Constraint violations are data conflicts, not outages
        if not is_storage_error(exc) or isinstance(exc, IntegrityError):
            raise
        STORAGE_FAILURES_TOTAL.inc()
        logger.error(
            "Storage unavailable: %s",
            exc,
            extra={
                "event": LogEvent.STORAGE_UNAVAILABLE,
                "error_class": classify_error(exc),
                "error_type": type(exc).__name__,
            },
        )
        raise StorageUnavailableError() from exc
