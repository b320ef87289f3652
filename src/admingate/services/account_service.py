"""Admin account setup and maintenance.

Accounts are created by the setup endpoint or the CLI, mutated only by
login (last_login) and deactivation, and never deleted.
"""

import logging
from datetime import datetime

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from admingate.core.errors import BadRequestError, ConflictError, NotFoundError
from admingate.core.logging_schema import Component, LogEvent
from admingate.core.models import Account
from admingate.core.models.auth import generate_ulid, utc_now
from admingate.core.retryable import storage_guard
from admingate.core.security import (
    check_password_strength,
    generate_salt,
    hash_password,
    is_valid_username,
    sanitize_input,
)
from admingate.services.session_service import SessionService

logger = logging.getLogger(__name__)


class AccountService:
    """Service for admin accounts."""

    @staticmethod
    async def create_account(db: AsyncSession, username: str, password: str) -> Account:
        """Create an admin account.

        Raises:
            BadRequestError: Invalid username or weak password
            ConflictError: Username already taken
        """
        username = sanitize_input(username or "")
        if not username or not password:
            raise BadRequestError("Username and password are required")
        if not is_valid_username(username):
            raise BadRequestError(
                "Username must be 3-20 characters, letters, numbers, underscore or hyphen only"
            )
        problems = check_password_strength(password)
        if problems:
            raise BadRequestError("; ".join(problems))

        if await AccountService.get_by_username(db, username) is not None:
            raise ConflictError("Username already exists")

        salt = generate_salt()
        account = Account(
            id=generate_ulid(),
            username=username,
            password_hash=hash_password(password, salt),
            salt=salt,
            is_active=True,
            created_at=utc_now(),
        )

        async def _insert() -> None:
            await db.execute(insert(Account).values(**account.model_dump()))
            await db.commit()

        try:
            await storage_guard(_insert, retry=True, on_retry=db.rollback)
        except IntegrityError as exc:
            await db.rollback()
            raise ConflictError("Username already exists") from exc

        logger.info(
            "Admin account created",
            extra={
                "event": LogEvent.ACCOUNT_CREATED,
                "component": Component.AUTH,
                "username": username,
            },
        )
        return account

    @staticmethod
    async def get_by_username(db: AsyncSession, username: str) -> Account | None:
        async def _get() -> Account | None:
            result = await db.execute(
                select(Account).where(col(Account.username) == username)
            )
            return result.scalar_one_or_none()

        return await storage_guard(_get)

    @staticmethod
    async def count_active(db: AsyncSession) -> int:
        async def _count() -> int:
            count = await db.scalar(
                select(func.count()).select_from(Account).where(col(Account.is_active))
            )
            return count or 0

        return await storage_guard(_count)

    @staticmethod
    async def list_accounts(db: AsyncSession) -> list[Account]:
        async def _list() -> list[Account]:
            result = await db.execute(select(Account).order_by(col(Account.created_at)))
            return list(result.scalars().all())

        return await storage_guard(_list)

    @staticmethod
    async def record_login(db: AsyncSession, account_id: str, when: datetime) -> None:
        async def _update() -> None:
            await db.execute(
                update(Account).where(col(Account.id) == account_id).values(last_login=when)
            )
            await db.commit()

        await storage_guard(_update, retry=True, on_retry=db.rollback)

    @staticmethod
    async def deactivate(db: AsyncSession, account_id: str) -> Account:
        """Deactivate an account and revoke all of its sessions.

        Raises:
            NotFoundError: No such account
        """
        account = await storage_guard(lambda: db.get(Account, account_id))
        if account is None:
            raise NotFoundError("Admin user not found")

        async def _update() -> None:
            await db.execute(
                update(Account).where(col(Account.id) == account_id).values(is_active=False)
            )
            await db.commit()

        await storage_guard(_update, retry=True, on_retry=db.rollback)
        revoked = await SessionService.revoke_for_account(db, account_id)
        await db.refresh(account)

        logger.info(
            "Admin account deactivated",
            extra={
                "event": LogEvent.ACCOUNT_DEACTIVATED,
                "component": Component.AUTH,
                "username": account.username,
                "sessions_revoked": revoked,
            },
        )
        return account
