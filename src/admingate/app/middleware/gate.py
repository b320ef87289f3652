"""Edge gate for protected admin routes.

Runs ahead of every /admin page and /api/admin endpoint (except login,
setup and the unauthorized page):

    no cookie         -> DENIED_NO_TOKEN   (audit no_session_token)
    malformed cookie  -> DENIED_BAD_SHAPE  (audit malformed_session_token, clear cookie)
    validate() false  -> DENIED_INVALID    (audit invalid_session_token, clear cookie)
    validate() true   -> ALLOWED

Denied pages redirect to the unauthorized page; denied API calls get a
401 JSON error. A credential store failure answers 503 and is neither an
allow nor a denial. Every admin response carries the security headers.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from admingate.app.config import GateConfig, get_settings
from admingate.app.metrics.collector import GATE_DECISIONS_TOTAL
from admingate.core.client_ip import resolve_client_ip
from admingate.core.domain import GateDecision, RouteClass, UnauthorizedReason
from admingate.core.errors import AdminGateError, StorageUnavailableError, UnauthorizedError
from admingate.core.logging_schema import Component, LogEvent
from admingate.core.models.audit import UNKNOWN
from admingate.core.security import SECURITY_HEADERS, is_valid_session_token, token_prefix
from admingate.infra.database import get_session_factory
from admingate.services.audit_service import UnauthorizedRequestInfo, get_audit_logger
from admingate.services.session_service import SessionService

logger = logging.getLogger(__name__)

ADMIN_PAGE_PREFIX = "/admin"
ADMIN_API_PREFIX = "/api/admin"
PUBLIC_API_PATHS = ("/api/admin/auth", "/api/admin/setup")

_DENY_REASONS = {
    GateDecision.DENIED_NO_TOKEN: UnauthorizedReason.NO_SESSION_TOKEN,
    GateDecision.DENIED_BAD_SHAPE: UnauthorizedReason.MALFORMED_SESSION_TOKEN,
    GateDecision.DENIED_INVALID: UnauthorizedReason.INVALID_SESSION_TOKEN,
}


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def is_admin_path(path: str) -> bool:
    return _under(path, ADMIN_PAGE_PREFIX) or _under(path, ADMIN_API_PREFIX)


def classify_route(path: str, config: GateConfig | None = None) -> RouteClass:
    """Decide whether path is gated, and how a denial is answered."""
    config = config or get_settings().gate
    if _under(path, config.unauthorized_path):
        return RouteClass.PUBLIC
    if _under(path, ADMIN_PAGE_PREFIX):
        return RouteClass.PAGE
    if _under(path, ADMIN_API_PREFIX):
        if any(_under(path, public) for public in PUBLIC_API_PATHS):
            return RouteClass.PUBLIC
        return RouteClass.API
    return RouteClass.PUBLIC


def _error_response(exc: AdminGateError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
        headers=exc.headers(),
    )


class AdminGateMiddleware(BaseHTTPMiddleware):
    """Session gate for admin pages and admin API routes.

    Usage:
        app.add_middleware(AdminGateMiddleware)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        route_class = classify_route(path)

        if route_class is RouteClass.PUBLIC:
            response = await call_next(request)
        else:
            response = await self._gate(request, call_next, route_class)

        if is_admin_path(path):
            for name, value in SECURITY_HEADERS.items():
                response.headers.setdefault(name, value)
        return response

    async def _gate(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
        route_class: RouteClass,
    ) -> Response:
        settings = get_settings()
        client_ip = resolve_client_ip(request.headers, settings.client_ip.headers)
        token = request.cookies.get(settings.cookie.name)

        decision = GateDecision.UNCHECKED
        if not token:
            decision = GateDecision.DENIED_NO_TOKEN
        elif not is_valid_session_token(token):
            decision = GateDecision.DENIED_BAD_SHAPE
        else:
            try:
                async with get_session_factory()() as db:
                    valid = await SessionService.validate(db, token, client_ip)
            except StorageUnavailableError as exc:
                GATE_DECISIONS_TOTAL.labels(
                    decision="unavailable", route_class=route_class.value
                ).inc()
                return _error_response(exc)
            decision = GateDecision.ALLOWED if valid else GateDecision.DENIED_INVALID

        GATE_DECISIONS_TOTAL.labels(
            decision=decision.value, route_class=route_class.value
        ).inc()
        request.state.gate_decision = decision

        if not decision.denied:
            logger.debug(
                "Gate allowed request",
                extra={
                    "event": LogEvent.GATE_ALLOWED,
                    "component": Component.GATE,
                    "route_class": route_class.value,
                    "path": request.url.path,
                },
            )
            return await call_next(request)

        await get_audit_logger().record_unauthorized(
            UnauthorizedRequestInfo(
                ip_address=client_ip,
                path=request.url.path,
                user_agent=request.headers.get("user-agent", UNKNOWN),
                referer=request.headers.get("referer"),
            ),
            _DENY_REASONS[decision],
        )
        logger.info(
            "Gate denied request",
            extra={
                "event": LogEvent.GATE_DENIED,
                "component": Component.GATE,
                "decision": decision.value,
                "route_class": route_class.value,
                "path": request.url.path,
                "client_ip": client_ip,
                "token_prefix": token_prefix(token) if token else None,
            },
        )

        response: Response
        if route_class is RouteClass.PAGE:
            response = RedirectResponse(settings.gate.unauthorized_path, status_code=302)
        else:
            response = _error_response(UnauthorizedError())

        if decision is not GateDecision.DENIED_NO_TOKEN:
            response.delete_cookie(
                settings.cookie.name,
                path="/",
                secure=settings.cookie.secure,
                httponly=True,
                samesite=settings.cookie.samesite,
            )
        return response
