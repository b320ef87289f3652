"""Credential store session management.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) is supported for
tests and local runs.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from admingate.app.config import get_settings
from admingate.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _create_engine(url: str) -> AsyncEngine:
    settings = get_settings().database

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        return create_async_engine(
            url,
            echo=settings.echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False, "timeout": settings.command_timeout},
        )

    return create_async_engine(
        url,
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=3600,
        pool_pre_ping=True,
        connect_args={
            "timeout": settings.command_timeout,
            "command_timeout": settings.command_timeout,
            "server_settings": {"application_name": "admingate"},
        },
    )


async def init_db(url: str | None = None, create_tables: bool = False) -> AsyncEngine:
    """Initialize the engine and session factory.

    Args:
        url: Database URL (defaults to DATABASE_URL)
        create_tables: Create tables from SQLModel metadata
    """
    global _engine, _session_factory

    url = url or get_settings().database.url
    _engine = _create_engine(url)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    try:
        async with _engine.begin() as conn:
            if create_tables:
                await conn.run_sync(SQLModel.metadata.create_all)
            await conn.execute(text("SELECT 1"))
        logger.info(
            "Database connected",
            extra={"event": LogEvent.DB_CONNECTED, "database": url.split("@")[-1]},
        )
    except Exception as e:
        logger.error(
            "Database connection failed",
            extra={
                "event": LogEvent.DB_ERROR,
                "error_type": type(e).__name__,
                "error": str(e),
            },
        )
        raise

    return _engine


async def close_db() -> None:
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized")
    return _engine


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized")

    async with _session_factory() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get session factory for creating new sessions.

    Used where a request-independent session is needed (edge gate, audit
    writes, rate-limit store).
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized")
    return _session_factory
