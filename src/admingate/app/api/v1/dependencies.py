"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from admingate.app.config import get_settings
from admingate.core.client_ip import resolve_client_ip
from admingate.core.models.audit import UNKNOWN
from admingate.infra.database import get_session
from admingate.services.audit_service import AuditLogger, get_audit_logger
from admingate.services.auth_service import AuthService, ClientInfo
from admingate.services.rate_limiter import get_rate_limiter


def get_client_info(request: Request) -> ClientInfo:
    """Resolve client IP (proxy header precedence) and user agent."""
    return ClientInfo(
        ip=resolve_client_ip(request.headers, get_settings().client_ip.headers),
        user_agent=request.headers.get("user-agent", UNKNOWN),
    )


def get_session_token(request: Request) -> str | None:
    return request.cookies.get(get_settings().cookie.name)


def get_auth_service() -> AuthService:
    return AuthService(get_rate_limiter(), get_audit_logger())


DbSession = Annotated[AsyncSession, Depends(get_session)]
Client = Annotated[ClientInfo, Depends(get_client_info)]
SessionToken = Annotated[str | None, Depends(get_session_token)]
Auth = Annotated[AuthService, Depends(get_auth_service)]
Audit = Annotated[AuditLogger, Depends(get_audit_logger)]
