"""Redis connection management.

Redis is optional: it backs the rate-limit counter store when
SECURITY_RATE_LIMIT_BACKEND=redis.
"""

import logging

import redis.asyncio as redis

from admingate.app.config import get_settings
from admingate.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


async def init_redis(url: str | None = None) -> redis.Redis:
    global _client

    settings = get_settings().redis
    _client = redis.from_url(
        url or settings.url,
        max_connections=settings.max_connections,
        socket_timeout=settings.socket_timeout,
        socket_connect_timeout=settings.socket_timeout,
        decode_responses=True,
    )
    await _client.ping()
    logger.info("Redis connected", extra={"event": LogEvent.REDIS_CONNECTED})
    return _client


async def close_redis() -> None:
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    if _client is None:
        raise RuntimeError("Redis not initialized")
    return _client
