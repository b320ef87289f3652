"""Authentication API endpoints.

Endpoints:
- POST /api/admin/auth - Login with username/password
- GET /api/admin/auth - Session status (slides expiry)
- DELETE /api/admin/auth - Logout (revoke session)
"""

from datetime import datetime

from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from admingate.app.api.v1.dependencies import Auth, Client, DbSession, SessionToken
from admingate.app.config import get_settings
from admingate.core.models import Account

router = APIRouter(prefix="/admin/auth", tags=["auth"])


class LoginRequest(BaseModel):
    """Request schema for login.

    Empty fields are rejected by the service with 400, not by validation.
    """

    username: str = Field(default="")
    password: str = Field(default="")


class UserInfo(BaseModel):
    id: str
    username: str
    last_login: datetime | None = None


class LoginResponse(BaseModel):
    success: bool = True
    redirect: str
    user: UserInfo


class StatusResponse(BaseModel):
    authenticated: bool
    user: UserInfo | None = None


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"


def _user_info(account: Account, last_login: datetime | None) -> UserInfo:
    return UserInfo(id=account.id, username=account.username, last_login=last_login)


def _clear_cookie(response: Response) -> None:
    cookie = get_settings().cookie
    response.delete_cookie(
        key=cookie.name,
        path="/",
        secure=cookie.secure,
        httponly=True,
        samesite=cookie.samesite,
    )


@router.post("")
async def login(
    body: LoginRequest,
    response: Response,
    db: DbSession,
    client: Client,
    auth: Auth,
) -> LoginResponse:
    """Login with username and password.

    On success, sets the session cookie and returns the account with its
    previous login time. Any credential failure returns the same 401.
    A locked out client gets 429 with the remaining wait.
    """
    result = await auth.login(db, body.username, body.password, client)

    settings = get_settings()
    response.set_cookie(
        key=settings.cookie.name,
        value=result.token,
        httponly=True,
        secure=settings.cookie.secure,
        samesite=settings.cookie.samesite,
        path="/",
        max_age=settings.security.session_ttl,
    )

    return LoginResponse(
        redirect=settings.gate.dashboard_path,
        user=_user_info(result.account, result.previous_login),
    )


@router.get("", response_model_exclude_none=True)
async def session_status(
    db: DbSession,
    client: Client,
    auth: Auth,
    token: SessionToken,
) -> StatusResponse:
    """Report whether the caller holds a valid session; refreshes its expiry."""
    account = await auth.status(db, token, client)
    if account is None:
        return StatusResponse(authenticated=False)
    return StatusResponse(
        authenticated=True, user=_user_info(account, account.last_login)
    )


@router.delete("")
async def logout(
    response: Response,
    db: DbSession,
    client: Client,
    auth: Auth,
    token: SessionToken,
) -> LogoutResponse:
    """Revoke the session and clear the cookie.

    Always succeeds (even without a session).
    """
    await auth.logout(db, token, client)
    _clear_cookie(response)
    return LogoutResponse()
