"""Tests for the admin back office endpoints."""

import json
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from admingate.app.config import get_settings
from admingate.core.models import AdminSession, AuditLogEntry
from admingate.core.models.auth import utc_now

SETUP_KEY = "setup-key-for-tests"
NEW_PASSWORD = "N3w!password"


@pytest_asyncio.fixture
async def token(login) -> str:
    return (await login()).cookies["admin_session"]


@pytest.fixture
def setup_key(monkeypatch) -> str:
    monkeypatch.setattr(get_settings().security, "setup_key", SETUP_KEY)
    return SETUP_KEY


async def _actions(session_factory) -> list[str]:
    async with session_factory() as db:
        result = await db.execute(select(AuditLogEntry.action))
        return list(result.scalars().all())


class TestSetup:
    async def test_status_counts_active_admins(self, client) -> None:
        response = await client.get("/api/admin/setup")

        assert response.json() == {"hasAdminUser": True, "adminCount": 1}

    async def test_disabled_without_key(self, client) -> None:
        response = await client.post(
            "/api/admin/setup",
            json={"username": "second", "password": NEW_PASSWORD, "setupKey": "anything"},
        )

        assert response.status_code == 503
        assert response.json()["code"] == "SETUP_DISABLED"

    async def test_wrong_key_rejected_and_audited(
        self, client, setup_key, session_factory
    ) -> None:
        response = await client.post(
            "/api/admin/setup",
            json={"username": "second", "password": NEW_PASSWORD, "setupKey": "wrong"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid setup key"
        assert await _actions(session_factory) == ["setup_failure"]

    async def test_creates_account(self, client, setup_key, login) -> None:
        response = await client.post(
            "/api/admin/setup",
            json={"username": "second", "password": NEW_PASSWORD, "setupKey": setup_key},
        )

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "second"
        assert (await login(username="second", password=NEW_PASSWORD)).status_code == 200

    async def test_duplicate_username(self, client, setup_key) -> None:
        response = await client.post(
            "/api/admin/setup",
            json={"username": "admin", "password": NEW_PASSWORD, "setupKey": setup_key},
        )

        assert response.status_code == 409

    async def test_weak_password(self, client, setup_key) -> None:
        response = await client.post(
            "/api/admin/setup",
            json={"username": "second", "password": "short", "setupKey": setup_key},
        )

        assert response.status_code == 400
        assert "at least 8 characters" in response.json()["error"]


class TestLogs:
    async def test_requires_session(self, client) -> None:
        response = await client.get("/api/admin/logs")
        assert response.status_code == 401

    async def test_lists_newest_first_with_parsed_data(
        self, client, token, with_session
    ) -> None:
        response = await client.get("/api/admin/logs", headers=with_session(token))

        assert response.status_code == 200
        body = response.json()
        [entry] = body["logs"]
        assert entry["action"] == "login_success"
        assert entry["data"]["username"] == "admin"
        assert entry["data"]["type"] == "login_success"
        assert body["pagination"] == {"total": 1, "limit": 50, "offset": 0, "hasMore": False}

    async def test_pagination_and_filter(self, client, login, token, with_session) -> None:
        for _ in range(3):
            await login(password="Wrong-pass1")

        page = await client.get(
            "/api/admin/logs?limit=2&offset=0&action=login_failure",
            headers=with_session(token),
        )

        body = page.json()
        assert len(body["logs"]) == 2
        assert {log["action"] for log in body["logs"]} == {"login_failure"}
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["hasMore"] is True

    async def test_limit_validated(self, client, token, with_session) -> None:
        response = await client.get("/api/admin/logs?limit=0", headers=with_session(token))
        assert response.status_code == 422

    async def test_unauthorized_logs(self, client, token, with_session) -> None:
        await client.get("/admin", headers={"x-forwarded-for": "198.51.100.77"})

        response = await client.get(
            "/api/admin/unauthorized-logs", headers=with_session(token)
        )

        [entry] = response.json()
        assert entry["ip_address"] == "198.51.100.77"
        assert entry["path"] == "/admin"
        assert entry["reason"] == "no_session_token"
        assert entry["city"] == "Amsterdam"


class TestSessionMaintenance:
    async def test_stats(self, client, login, token, with_session) -> None:
        await login()

        response = await client.get(
            "/api/admin/cleanup-sessions", headers=with_session(token)
        )

        assert response.json() == {
            "success": True,
            "stats": {"total": 2, "active": 2, "expired": 0},
        }

    async def test_cleanup_removes_expired(
        self, client, token, with_session, session_factory, admin_account
    ) -> None:
        async with session_factory() as db:
            db.add(
                AdminSession(
                    token="cd" * 32,
                    user_id=admin_account.id,
                    ip_address="192.0.2.1",
                    user_agent="old",
                    created_at=utc_now() - timedelta(days=3),
                    expires_at=utc_now() - timedelta(days=2),
                    is_active=True,
                )
            )
            await db.commit()

        response = await client.post(
            "/api/admin/cleanup-sessions", headers=with_session(token)
        )

        assert response.json() == {
            "success": True,
            "removed": 1,
            "message": "Cleaned up 1 expired sessions",
        }
        assert "session_cleanup" in await _actions(session_factory)


class TestAccounts:
    async def test_list(self, client, token, with_session) -> None:
        response = await client.get("/api/admin/users", headers=with_session(token))

        [user] = response.json()["users"]
        assert user["username"] == "admin"
        assert user["is_active"] is True
        assert "password_hash" not in user
        assert "salt" not in user

    async def test_create(self, client, token, with_session, session_factory) -> None:
        response = await client.post(
            "/api/admin/users",
            json={"username": "operator", "password": NEW_PASSWORD},
            headers=with_session(token),
        )

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "operator"

        async with session_factory() as db:
            result = await db.execute(
                select(AuditLogEntry).where(AuditLogEntry.action == "admin_user_created")
            )
            [row] = result.scalars().all()
        assert json.loads(row.data)["via"] == "api"

    async def test_deactivate_revokes_sessions(
        self, client, token, with_session, admin_account
    ) -> None:
        response = await client.post(
            f"/api/admin/users/{admin_account.id}/deactivate",
            headers=with_session(token),
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is False

        after = await client.get("/api/admin/users", headers=with_session(token))
        assert after.status_code == 401

    async def test_deactivate_unknown(self, client, token, with_session) -> None:
        response = await client.post(
            "/api/admin/users/01ARZ3NDEKTSV4RRFFQ69G5FAV/deactivate",
            headers=with_session(token),
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Admin user not found", "code": "NOT_FOUND"}


class TestServiceEndpoints:
    async def test_health(self, client) -> None:
        response = await client.get("/health")

        body = response.json()
        assert body["status"] == "ok"
        assert body["services"] == {"database": "connected"}

    async def test_metrics(self, client) -> None:
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "admingate_lockouts_total" in response.text

    async def test_metrics_disabled(self, client, monkeypatch) -> None:
        monkeypatch.setattr(get_settings().metrics, "enabled", False)

        response = await client.get("/metrics")

        assert response.status_code == 404
