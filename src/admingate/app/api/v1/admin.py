"""Admin back office API endpoints.

Endpoints:
- GET  /api/admin/setup - Whether an active admin account exists
- POST /api/admin/setup - Create an admin account (requires the setup key)
- GET  /api/admin/logs - Audit log, paginated, optional action filter
- GET  /api/admin/unauthorized-logs - Recent denied requests
- GET  /api/admin/cleanup-sessions - Session statistics
- POST /api/admin/cleanup-sessions - Delete expired and revoked sessions
- GET  /api/admin/users - List admin accounts
- POST /api/admin/users - Create an admin account
- POST /api/admin/users/{user_id}/deactivate - Deactivate an account

Everything except /setup sits behind the edge gate.
"""

import hmac
import json
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from admingate.app.api.v1.dependencies import Audit, Client, DbSession
from admingate.app.config import get_settings
from admingate.core.domain import AuditAction
from admingate.core.errors import SetupDisabledError, UnauthorizedError
from admingate.core.logging_schema import Component, LogEvent
from admingate.core.models import Account, AuditLogEntry
from admingate.core.security import sanitize_input
from admingate.services.account_service import AccountService
from admingate.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Schemas
# =============================================================================


class SetupStatusResponse(BaseModel):
    hasAdminUser: bool
    adminCount: int


class CreateAccountRequest(BaseModel):
    username: str = Field(default="")
    password: str = Field(default="")


class SetupRequest(CreateAccountRequest):
    setupKey: str = Field(default="")


class AccountInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    is_active: bool
    created_at: datetime | None = None
    last_login: datetime | None = None


class AccountCreatedResponse(BaseModel):
    success: bool = True
    message: str = "Admin user created successfully"
    user: AccountInfo


class AccountListResponse(BaseModel):
    users: list[AccountInfo]


class AuditLogItem(BaseModel):
    id: str
    action: str
    data: Any = None
    ip_address: str
    user_agent: str
    timestamp: datetime | None = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class AuditLogPage(BaseModel):
    logs: list[AuditLogItem]
    pagination: Pagination


class UnauthorizedLogItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ip_address: str
    user_agent: str
    path: str
    reason: str
    country: str
    region: str
    city: str
    isp: str
    referer: str | None = None
    timestamp: datetime | None = None


class SessionStatsBody(BaseModel):
    total: int
    active: int
    expired: int


class SessionStatsResponse(BaseModel):
    success: bool = True
    stats: SessionStatsBody


class CleanupResponse(BaseModel):
    success: bool = True
    removed: int
    message: str


def _audit_item(entry: AuditLogEntry) -> AuditLogItem:
    data = None
    if entry.data:
        try:
            data = json.loads(entry.data)
        except ValueError:
            data = entry.data
    return AuditLogItem(
        id=entry.id,
        action=entry.action,
        data=data,
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        timestamp=entry.timestamp,
    )


def _account_info(account: Account) -> AccountInfo:
    return AccountInfo.model_validate(account)


# =============================================================================
# Setup (not gated)
# =============================================================================


@router.get("/setup")
async def setup_status(db: DbSession) -> SetupStatusResponse:
    count = await AccountService.count_active(db)
    return SetupStatusResponse(hasAdminUser=count > 0, adminCount=count)


@router.post("/setup")
async def setup(
    body: SetupRequest, db: DbSession, client: Client, audit: Audit
) -> AccountCreatedResponse:
    """Create an admin account, authorized by the configured setup key.

    Without SECURITY_SETUP_KEY the endpoint is disabled (503). A wrong key
    is audited as setup_failure and answers 401.
    """
    expected = get_settings().security.setup_key
    if not expected:
        raise SetupDisabledError()

    supplied = sanitize_input(body.setupKey)
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        await audit.record(
            AuditAction.SETUP_FAILURE,
            {"username": sanitize_input(body.username), "reason": "invalid_setup_key"},
            client.ip,
            client.user_agent,
        )
        logger.warning(
            "Setup rejected: invalid setup key",
            extra={
                "event": LogEvent.SETUP_REJECTED,
                "component": Component.API,
                "client_ip": client.ip,
            },
        )
        raise UnauthorizedError("Invalid setup key")

    account = await AccountService.create_account(db, body.username, body.password)
    await audit.record(
        AuditAction.ADMIN_USER_CREATED,
        {"username": account.username, "via": "setup"},
        client.ip,
        client.user_agent,
    )
    return AccountCreatedResponse(user=_account_info(account))


# =============================================================================
# Audit trail (gated)
# =============================================================================


@router.get("/logs")
async def list_logs(
    audit: Audit,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    action: str | None = None,
) -> AuditLogPage:
    entries, total = await audit.list_logs(limit=limit, offset=offset, action=action)
    return AuditLogPage(
        logs=[_audit_item(entry) for entry in entries],
        pagination=Pagination(
            total=total, limit=limit, offset=offset, hasMore=offset + limit < total
        ),
    )


@router.get("/unauthorized-logs")
async def list_unauthorized_logs(
    audit: Audit,
    limit: int = Query(default=100, ge=1, le=500),
) -> list[UnauthorizedLogItem]:
    entries = await audit.list_unauthorized(limit=limit)
    return [UnauthorizedLogItem.model_validate(entry) for entry in entries]


# =============================================================================
# Session maintenance (gated)
# =============================================================================


@router.get("/cleanup-sessions")
async def session_stats(db: DbSession) -> SessionStatsResponse:
    stats = await SessionService.stats(db)
    return SessionStatsResponse(
        stats=SessionStatsBody(total=stats.total, active=stats.active, expired=stats.expired)
    )


@router.post("/cleanup-sessions")
async def cleanup_sessions(db: DbSession, client: Client, audit: Audit) -> CleanupResponse:
    removed = await SessionService.cleanup(db)
    await audit.record(
        AuditAction.SESSION_CLEANUP,
        {"sessions_removed": removed},
        client.ip,
        client.user_agent,
    )
    return CleanupResponse(
        removed=removed, message=f"Cleaned up {removed} expired sessions"
    )


# =============================================================================
# Accounts (gated)
# =============================================================================


@router.get("/users")
async def list_users(db: DbSession) -> AccountListResponse:
    accounts = await AccountService.list_accounts(db)
    return AccountListResponse(users=[_account_info(account) for account in accounts])


@router.post("/users")
async def create_user(
    body: CreateAccountRequest, db: DbSession, client: Client, audit: Audit
) -> AccountCreatedResponse:
    account = await AccountService.create_account(db, body.username, body.password)
    await audit.record(
        AuditAction.ADMIN_USER_CREATED,
        {"username": account.username, "via": "api"},
        client.ip,
        client.user_agent,
    )
    return AccountCreatedResponse(user=_account_info(account))


@router.post("/users/{user_id}/deactivate")
async def deactivate_user(
    user_id: str, db: DbSession, client: Client, audit: Audit
) -> AccountInfo:
    account = await AccountService.deactivate(db, user_id)
    await audit.record(
        AuditAction.ADMIN_USER_DEACTIVATED,
        {"userId": account.id, "username": account.username},
        client.ip,
        client.user_agent,
    )
    return _account_info(account)
