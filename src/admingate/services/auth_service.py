"""Login, session status and logout.

Ties the rate limiter, password verification, session manager and audit
logger together. Every credential failure surfaces as the same generic
UnauthorizedError; only lockouts carry a specific message.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import NoReturn

from sqlalchemy.ext.asyncio import AsyncSession

from admingate.app.metrics.collector import LOGIN_ATTEMPTS_TOTAL
from admingate.core.domain import AuditAction
from admingate.core.errors import BadRequestError, TooManyRequestsError, UnauthorizedError
from admingate.core.logging_schema import Component, LogEvent
from admingate.core.models import Account
from admingate.core.models.audit import UNKNOWN
from admingate.core.models.auth import utc_now
from admingate.core.security import (
    burn_password_hash,
    is_valid_session_token,
    sanitize_input,
    token_prefix,
    verify_password,
)
from admingate.services.account_service import AccountService
from admingate.services.audit_service import AuditLogger
from admingate.services.rate_limiter import RateLimiter
from admingate.services.session_service import SessionService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(frozen=True)
class ClientInfo:
    ip: str
    user_agent: str = UNKNOWN


@dataclass(frozen=True)
class LoginResult:
    account: Account
    token: str
    previous_login: datetime | None


class AuthService:
    """Credential verification glue."""

    def __init__(self, rate_limiter: RateLimiter, audit: AuditLogger) -> None:
        self._rate_limiter = rate_limiter
        self._audit = audit

    async def login(
        self, db: AsyncSession, username: str, password: str, client: ClientInfo
    ) -> LoginResult:
        """Authenticate and issue a session.

        Raises:
            BadRequestError: Missing username or password
            TooManyRequestsError: Client IP is locked out
            UnauthorizedError: Unknown user, inactive account or wrong password
            StorageUnavailableError: Credential store failed
        """
        username = sanitize_input(username or "")
        if not username or not password:
            raise BadRequestError("Username and password are required")

        lock = await self._rate_limiter.check_locked(client.ip)
        if lock.locked:
            LOGIN_ATTEMPTS_TOTAL.labels(result="locked").inc()
            await self._audit.record(
                AuditAction.RATE_LIMIT_EXCEEDED,
                {"username": username, "remainingTime": lock.remaining_minutes},
                client.ip,
                client.user_agent,
            )
            logger.warning(
                "Login rejected: client locked out",
                extra={
                    "event": LogEvent.LOGIN_LOCKED,
                    "component": Component.AUTH,
                    "client_ip": client.ip,
                    "remaining_seconds": lock.remaining_seconds,
                },
            )
            raise TooManyRequestsError(
                retry_after=lock.remaining_seconds,
                message=(
                    "Too many failed attempts. "
                    f"Try again in {lock.remaining_minutes} minutes."
                ),
            )

        account = await AccountService.get_by_username(db, username)
        if account is None or not account.is_active:
            # Same hashing cost as a real verification
            burn_password_hash(password)
            await self._fail(username, "user_not_found", client)
        elif not verify_password(password, account.password_hash, account.salt):
            await self._fail(username, "invalid_password", client)

        # Session first: a failed issue leaves the counter and last_login untouched
        previous_login = account.last_login
        token = await SessionService.issue(db, account.id, client.ip, client.user_agent)
        await self._rate_limiter.clear(client.ip)
        await AccountService.record_login(db, account.id, utc_now())

        LOGIN_ATTEMPTS_TOTAL.labels(result="success").inc()
        await self._audit.record(
            AuditAction.LOGIN_SUCCESS,
            {"username": account.username, "sessionId": token_prefix(token)},
            client.ip,
            client.user_agent,
        )
        logger.info(
            "Login succeeded",
            extra={
                "event": LogEvent.LOGIN_SUCCEEDED,
                "component": Component.AUTH,
                "username": account.username,
                "client_ip": client.ip,
            },
        )
        return LoginResult(account=account, token=token, previous_login=previous_login)

    async def _fail(self, username: str, reason: str, client: ClientInfo) -> NoReturn:
        attempts = await self._rate_limiter.record_failure(client.ip)
        LOGIN_ATTEMPTS_TOTAL.labels(result="failure").inc()

        details: dict[str, object] = {"username": username, "reason": reason}
        if reason == "invalid_password":
            details["failedAttempts"] = attempts
        await self._audit.record(
            AuditAction.LOGIN_FAILURE, details, client.ip, client.user_agent
        )
        logger.info(
            "Login failed",
            extra={
                "event": LogEvent.LOGIN_FAILED,
                "component": Component.AUTH,
                "reason": reason,
                "failed_attempts": attempts,
                "client_ip": client.ip,
            },
        )
        raise UnauthorizedError(INVALID_CREDENTIALS)

    async def status(
        self, db: AsyncSession, token: str | None, client: ClientInfo
    ) -> Account | None:
        """Return the session's account and slide its expiry, or None.

        A well-formed token that no longer validates is audited as
        session_expired.
        """
        if not is_valid_session_token(token):
            return None

        result = await SessionService.validate_with_account(db, token, client.ip)
        if result is None:
            await self._audit.record(
                AuditAction.SESSION_EXPIRED,
                {"sessionId": token_prefix(token)},
                client.ip,
                client.user_agent,
            )
            return None

        await SessionService.refresh(db, token)
        _, account = result
        return account

    async def logout(self, db: AsyncSession, token: str | None, client: ClientInfo) -> None:
        """Revoke the session if the token is well formed. Always succeeds."""
        username = None
        if is_valid_session_token(token):
            result = await SessionService.validate_with_account(db, token, client.ip)
            if result is not None:
                username = result[1].username
            await SessionService.revoke(db, token)

        await self._audit.record(
            AuditAction.LOGOUT,
            {
                "username": username,
                "sessionId": token_prefix(token) if token else None,
            },
            client.ip,
            client.user_agent,
        )
        logger.info(
            "Logout",
            extra={
                "event": LogEvent.LOGOUT,
                "component": Component.AUTH,
                "client_ip": client.ip,
            },
        )
