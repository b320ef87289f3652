"""Security audit trail.

Writes are best-effort: `record` and `record_unauthorized` return False
instead of raising when the store fails. Failures are reported through the
JSON log and the audit_write_failures metric.

Each write uses its own database session, never the caller's request
session.
"""

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col

from admingate.app.metrics.collector import AUDIT_WRITE_FAILURES_TOTAL
from admingate.core.domain import AuditAction, UnauthorizedReason, severity_for
from admingate.core.logging_schema import Component, LogEvent
from admingate.core.models import AuditLogEntry, UnauthorizedAccessEntry
from admingate.core.models.audit import UNKNOWN
from admingate.core.models.auth import utc_now
from admingate.core.retryable import storage_guard
from admingate.infra.database import get_session_factory
from admingate.infra.geoip import UNKNOWN_LOCATION, GeoLocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnauthorizedRequestInfo:
    """Metadata of a denied request."""

    ip_address: str
    path: str
    user_agent: str = UNKNOWN
    referer: str | None = None


class AuditLogger:
    """Append-only audit log over admin_logs and admin_unauthorized."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        geolocator: GeoLocator | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._geolocator = geolocator or GeoLocator()

    async def _append(self, row: AuditLogEntry | UnauthorizedAccessEntry) -> bool:
        table = row.__tablename__
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
        except Exception as exc:
            AUDIT_WRITE_FAILURES_TOTAL.labels(table=table).inc()
            logger.error(
                "Audit write failed",
                extra={
                    "event": LogEvent.AUDIT_WRITE_FAILED,
                    "component": Component.AUDIT,
                    "table": table,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return False
        return True

    async def record(
        self,
        action: AuditAction,
        details: dict[str, Any] | None = None,
        client_ip: str = UNKNOWN,
        user_agent: str = UNKNOWN,
    ) -> bool:
        """Append one security event.

        The stored data column is a JSON envelope of the details merged
        with type, severity and timestamp.

        Returns:
            True if the row was written
        """
        now = utc_now()
        envelope = {
            "type": action.value,
            "severity": severity_for(action).value,
            "timestamp": now.isoformat(),
            **(details or {}),
        }
        row = AuditLogEntry(
            action=action.value,
            data=json.dumps(envelope, default=str),
            ip_address=client_ip,
            user_agent=user_agent,
            timestamp=now,
        )
        return await self._append(row)

    async def record_unauthorized(
        self, info: UnauthorizedRequestInfo, reason: UnauthorizedReason
    ) -> bool:
        """Append one denied-request row, enriched with geolocation.

        Geolocation never fails the write: unresolved fields hold "unknown".
        """
        try:
            location = await self._geolocator.lookup(info.ip_address)
        except Exception as exc:
            logger.warning(
                "Geolocation lookup raised",
                extra={
                    "event": LogEvent.GEOIP_FAILED,
                    "component": Component.AUDIT,
                    "error_type": type(exc).__name__,
                },
            )
            location = UNKNOWN_LOCATION

        row = UnauthorizedAccessEntry(
            ip_address=info.ip_address,
            user_agent=info.user_agent,
            path=info.path,
            reason=reason.value,
            country=location.country,
            region=location.region,
            city=location.city,
            isp=location.isp,
            referer=info.referer,
            timestamp=utc_now(),
        )
        return await self._append(row)

    async def list_logs(
        self, limit: int = 50, offset: int = 0, action: str | None = None
    ) -> tuple[list[AuditLogEntry], int]:
        """Page through admin_logs, newest first.

        Returns:
            (entries, total matching rows)
        """

        async def _list() -> tuple[list[AuditLogEntry], int]:
            async with self._session_factory() as db:
                query = select(AuditLogEntry)
                count_query = select(func.count()).select_from(AuditLogEntry)
                if action:
                    query = query.where(col(AuditLogEntry.action) == action)
                    count_query = count_query.where(col(AuditLogEntry.action) == action)

                result = await db.execute(
                    query.order_by(
                        col(AuditLogEntry.timestamp).desc(), col(AuditLogEntry.id).desc()
                    )
                    .offset(offset)
                    .limit(limit)
                )
                total = await db.scalar(count_query)
                return list(result.scalars().all()), total or 0

        return await storage_guard(_list)

    async def list_unauthorized(self, limit: int = 100) -> list[UnauthorizedAccessEntry]:
        """Most recent denied requests, newest first."""

        async def _list() -> list[UnauthorizedAccessEntry]:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(UnauthorizedAccessEntry)
                    .order_by(
                        col(UnauthorizedAccessEntry.timestamp).desc(),
                        col(UnauthorizedAccessEntry.id).desc(),
                    )
                    .limit(limit)
                )
                return list(result.scalars().all())

        return await storage_guard(_list)

    async def purge_older_than(self, days: int) -> int:
        """Delete audit rows older than `days` from both tables.

        Maintenance only; nothing on a request path deletes audit rows.

        Returns:
            Number of rows deleted
        """
        cutoff = utc_now() - timedelta(days=days)

        async def _purge() -> int:
            async with self._session_factory() as db:
                logs = await db.execute(
                    delete(AuditLogEntry).where(col(AuditLogEntry.timestamp) < cutoff)
                )
                denied = await db.execute(
                    delete(UnauthorizedAccessEntry).where(
                        col(UnauthorizedAccessEntry.timestamp) < cutoff
                    )
                )
                await db.commit()
                return (logs.rowcount or 0) + (denied.rowcount or 0)

        return await storage_guard(_purge, retry=True)


# =============================================================================
# Global Instance Management
# =============================================================================

_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """Get or create AuditLogger instance."""
    global _audit_logger

    if _audit_logger is None:
        _audit_logger = AuditLogger(get_session_factory())

    return _audit_logger


def set_audit_logger(audit_logger: AuditLogger | None) -> None:
    """Replace the global AuditLogger (tests, reconnection)."""
    global _audit_logger
    _audit_logger = audit_logger
