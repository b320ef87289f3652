"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from admingate import __version__
from admingate.app.api.v1 import admin_router, auth_router
from admingate.app.config import get_settings
from admingate.app.logging import setup_logging
from admingate.app.metrics import get_metrics_response
from admingate.app.middleware import AdminGateMiddleware, LoggingMiddleware
from admingate.app.pages import router as pages_router
from admingate.core.errors import AdminGateError, NotFoundError
from admingate.core.logging_schema import LogEvent
from admingate.infra.database import close_db, get_engine, init_db
from admingate.infra.geoip import close_http_client
from admingate.infra.redis import close_redis, get_redis, init_redis

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()

    await init_db()
    if settings.security.rate_limit_backend == "redis":
        await init_redis()

    logger.info(
        "Starting application",
        extra={
            "event": LogEvent.APP_STARTED,
            "rate_limit_backend": settings.security.rate_limit_backend,
        },
    )

    yield

    logger.info("Shutting down application", extra={"event": LogEvent.APP_STOPPED})
    await close_http_client()
    await close_redis()
    await close_db()


app = FastAPI(title="admin-gate", version=__version__, lifespan=lifespan)
# Last added runs first: LoggingMiddleware wraps the gate so denials are traced
app.add_middleware(AdminGateMiddleware)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(AdminGateError)
async def admingate_error_handler(request: Request, exc: AdminGateError) -> JSONResponse:
    """Handle AdminGateError exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
        headers=exc.headers(),
    )


app.include_router(auth_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(pages_router)


async def _check_service(check_fn: Callable[[], Awaitable[object]]) -> str:
    """Check service health and return status string."""
    try:
        await check_fn()
        return "connected"
    except RuntimeError:
        return "not initialized"
    except Exception as e:
        return f"error: {e}"


async def _check_database() -> None:
    async with get_engine().begin() as conn:
        await conn.execute(text("SELECT 1"))


async def _check_redis() -> None:
    await get_redis().ping()


@app.get("/health")
async def health():
    checks = {"database": _check_service(_check_database)}
    if get_settings().security.rate_limit_backend == "redis":
        checks["redis"] = _check_service(_check_redis)

    results = await asyncio.gather(*checks.values())
    services = dict(zip(checks.keys(), results))
    is_degraded = any(s != "connected" for s in services.values())

    return {
        "status": "degraded" if is_degraded else "ok",
        "version": __version__,
        "services": services,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    if not get_settings().metrics.enabled:
        raise NotFoundError()
    return get_metrics_response()
