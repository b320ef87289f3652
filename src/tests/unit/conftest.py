"""Shared fixtures for admin-gate unit tests.

Every test gets a fresh in-memory SQLite database (aiosqlite, StaticPool)
and a geolocator mock, so nothing leaves the process.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from admingate.app.config import get_settings
from admingate.app.main import app
from admingate.core.models import Account
from admingate.infra.database import close_db, get_session_factory, init_db
from admingate.infra.geoip import GeoLocation, GeoLocator
from admingate.services.account_service import AccountService
from admingate.services.audit_service import AuditLogger, set_audit_logger
from admingate.services.rate_limiter import reset_rate_limiter

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "Adm1n!secret"
CLIENT_IP = "203.0.113.10"


@pytest.fixture(autouse=True)
def reset_globals():
    """Fresh settings and service singletons per test."""
    get_settings.cache_clear()
    reset_rate_limiter()
    set_audit_logger(None)
    yield
    reset_rate_limiter()
    set_audit_logger(None)
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_engine() -> AsyncIterator[AsyncEngine]:
    engine = await init_db(TEST_DATABASE_URL, create_tables=True)
    yield engine
    await close_db()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def admin_account(db_session: AsyncSession) -> Account:
    """Active admin account with ADMIN_PASSWORD."""
    return await AccountService.create_account(db_session, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def geolocator() -> AsyncMock:
    """GeoLocator mock resolving every IP to a fixed location."""
    locator = AsyncMock(spec=GeoLocator)
    locator.lookup = AsyncMock(
        return_value=GeoLocation(
            country="Netherlands", region="North Holland", city="Amsterdam", isp="Example ISP"
        )
    )
    return locator


@pytest.fixture
def audit_logger(
    session_factory: async_sessionmaker[AsyncSession], geolocator: AsyncMock
) -> AuditLogger:
    """AuditLogger installed as the global instance."""
    audit = AuditLogger(session_factory, geolocator)
    set_audit_logger(audit)
    return audit


@pytest_asyncio.fixture
async def client(
    db_engine: AsyncEngine, audit_logger: AuditLogger, admin_account: Account
) -> AsyncIterator[AsyncClient]:
    """ASGI client presenting CLIENT_IP through x-forwarded-for."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"x-forwarded-for": CLIENT_IP, "user-agent": "pytest-client"},
    ) as client:
        yield client


@pytest.fixture
def login(client: AsyncClient) -> Callable[..., Awaitable[httpx.Response]]:
    """POST /api/admin/auth, then drop the cookie from the client jar.

    Tests pass the session cookie explicitly so the presented IP and
    cookie are always visible in the test body.
    """

    async def _login(
        username: str = ADMIN_USERNAME,
        password: str = ADMIN_PASSWORD,
        ip: str = CLIENT_IP,
    ) -> httpx.Response:
        response = await client.post(
            "/api/admin/auth",
            json={"username": username, "password": password},
            headers={"x-forwarded-for": ip},
        )
        client.cookies.clear()
        return response

    return _login


def session_headers(token: str, ip: str = CLIENT_IP) -> dict[str, str]:
    """Request headers carrying a session cookie from ip."""
    return {"cookie": f"admin_session={token}", "x-forwarded-for": ip}


@pytest.fixture
def with_session() -> Callable[..., dict[str, str]]:
    return session_headers
