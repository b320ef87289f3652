"""Session management service for admin-gate.

Provides the IP-bound session lifecycle:
- Issue: Generate a random token bound to the client IP
- Validate: Shape check, then lookup with expiry, IP and account checks
- Refresh: Sliding expiration on status checks
- Revoke: Idempotent deactivation
- Cleanup / stats: Maintenance

Validation failures are never errors and never say why to the caller;
the reason is only logged. Storage failures raise StorageUnavailableError.

Configuration via SecurityConfig (SECURITY_ env prefix).
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from admingate.app.config import get_settings
from admingate.core.client_ip import is_unknown_ip
from admingate.core.logging_schema import Component, LogEvent
from admingate.core.models import Account, AdminSession
from admingate.core.models.auth import ensure_utc, utc_now
from admingate.core.retryable import storage_guard
from admingate.core.security import (
    generate_session_token,
    is_valid_session_token,
    token_prefix,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionStats:
    total: int
    active: int
    expired: int


class SessionService:
    """Service for managing admin sessions."""

    @staticmethod
    async def issue(
        db: AsyncSession, account_id: str, client_ip: str, user_agent: str
    ) -> str:
        """Issue a new session bound to client_ip.

        Args:
            db: Database session
            account_id: Owning account ID
            client_ip: Resolved client IP (immutable for the session lifetime)
            user_agent: Client user agent

        Returns:
            The 64 character session token
        """
        config = get_settings().security
        if is_unknown_ip(client_ip):
            logger.warning(
                "Issuing session to unresolved client IP",
                extra={"event": LogEvent.SESSION_ISSUED, "component": Component.SESSION},
            )

        token = generate_session_token()
        now = utc_now()
        values = {
            "token": token,
            "user_id": account_id,
            "ip_address": client_ip,
            "user_agent": user_agent,
            "created_at": now,
            "expires_at": now + timedelta(seconds=config.session_ttl),
            "is_active": True,
        }

        async def _insert() -> None:
            await db.execute(insert(AdminSession).values(**values))
            await db.commit()

        await storage_guard(_insert, retry=True, on_retry=db.rollback)
        logger.info(
            "Session issued",
            extra={
                "event": LogEvent.SESSION_ISSUED,
                "component": Component.SESSION,
                "token_prefix": token_prefix(token),
                "client_ip": client_ip,
            },
        )
        return token

    @staticmethod
    async def validate(db: AsyncSession, token: str | None, client_ip: str) -> bool:
        """Check that token names a live session issued to client_ip.

        Malformed tokens are rejected without touching storage.
        """
        return (
            await SessionService.validate_with_account(db, token, client_ip)
        ) is not None

    @staticmethod
    async def validate_with_account(
        db: AsyncSession, token: str | None, client_ip: str
    ) -> tuple[AdminSession, Account] | None:
        """Validate a session and return it with its owning account.

        Returns None if the token is malformed, unknown, inactive, expired,
        presented from another IP, or owned by a deactivated account.

        Raises:
            StorageUnavailableError: Credential store failed
        """
        if not is_valid_session_token(token):
            return None

        if get_settings().security.reject_unknown_ip and is_unknown_ip(client_ip):
            SessionService._rejected(token, "unknown_client_ip", client_ip)
            return None

        async def _lookup():
            result = await db.execute(
                select(AdminSession, Account)
                .join(Account, col(AdminSession.user_id) == col(Account.id))
                .where(col(AdminSession.token) == token)
                .execution_options(populate_existing=True)
            )
            return result.one_or_none()

        row = await storage_guard(_lookup)
        if row is None:
            SessionService._rejected(token, "not_found", client_ip)
            return None

        session, account = row
        if not session.is_active:
            SessionService._rejected(token, "inactive", client_ip)
            return None
        if ensure_utc(session.expires_at) <= utc_now():
            SessionService._rejected(token, "expired", client_ip)
            return None
        if session.ip_address != client_ip:
            SessionService._rejected(token, "ip_mismatch", client_ip)
            return None
        if not account.is_active:
            SessionService._rejected(token, "account_inactive", client_ip)
            return None

        return session, account

    @staticmethod
    def _rejected(token: str, reason: str, client_ip: str) -> None:
        logger.info(
            "Session rejected",
            extra={
                "event": LogEvent.SESSION_REJECTED,
                "component": Component.SESSION,
                "token_prefix": token_prefix(token),
                "reason": reason,
                "client_ip": client_ip,
            },
        )

    @staticmethod
    async def refresh(db: AsyncSession, token: str) -> None:
        """Slide expiry to now + session_ttl for an active session."""
        expires_at = utc_now() + timedelta(seconds=get_settings().security.session_ttl)

        async def _update() -> None:
            await db.execute(
                update(AdminSession)
                .where(col(AdminSession.token) == token, col(AdminSession.is_active))
                .values(expires_at=expires_at)
            )
            await db.commit()

        await storage_guard(_update, retry=True, on_retry=db.rollback)

    @staticmethod
    async def revoke(db: AsyncSession, token: str) -> None:
        """Deactivate a session. Revoking an unknown or inactive token is a no-op."""

        async def _update() -> None:
            await db.execute(
                update(AdminSession)
                .where(col(AdminSession.token) == token)
                .values(is_active=False)
            )
            await db.commit()

        await storage_guard(_update, retry=True, on_retry=db.rollback)

    @staticmethod
    async def revoke_for_account(db: AsyncSession, account_id: str) -> int:
        """Deactivate every active session of an account.

        Returns:
            Number of sessions revoked
        """

        async def _update() -> int:
            result = await db.execute(
                update(AdminSession)
                .where(
                    col(AdminSession.user_id) == account_id,
                    col(AdminSession.is_active),
                )
                .values(is_active=False)
            )
            await db.commit()
            return result.rowcount or 0

        return await storage_guard(_update, retry=True, on_retry=db.rollback)

    @staticmethod
    async def cleanup(db: AsyncSession) -> int:
        """Delete expired and inactive sessions.

        Returns:
            Number of sessions deleted
        """
        now = utc_now()

        async def _delete() -> int:
            result = await db.execute(
                delete(AdminSession).where(
                    or_(
                        col(AdminSession.expires_at) < now,
                        col(AdminSession.is_active).is_(False),
                    )
                )
            )
            await db.commit()
            return result.rowcount or 0

        deleted = await storage_guard(_delete, retry=True, on_retry=db.rollback)
        logger.info(
            "Session cleanup completed",
            extra={
                "event": LogEvent.SESSION_CLEANUP,
                "component": Component.SESSION,
                "deleted": deleted,
            },
        )
        return deleted

    @staticmethod
    async def stats(db: AsyncSession) -> SessionStats:
        """Count sessions: total, active (live and unexpired), expired (or revoked)."""
        now = utc_now()

        async def _count() -> SessionStats:
            total = await db.scalar(select(func.count()).select_from(AdminSession))
            active = await db.scalar(
                select(func.count())
                .select_from(AdminSession)
                .where(col(AdminSession.is_active), col(AdminSession.expires_at) > now)
            )
            expired = await db.scalar(
                select(func.count())
                .select_from(AdminSession)
                .where(
                    or_(
                        col(AdminSession.expires_at) <= now,
                        col(AdminSession.is_active).is_(False),
                    )
                )
            )
            return SessionStats(total=total or 0, active=active or 0, expired=expired or 0)

        return await storage_guard(_count)
