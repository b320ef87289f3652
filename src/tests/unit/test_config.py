"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from admingate.app.config import SecurityConfig, get_settings


class TestSecurityConfig:
    def test_defaults(self) -> None:
        security = get_settings().security

        assert security.session_ttl == 86400
        assert security.max_login_attempts == 5
        assert security.lockout_duration == 900
        assert security.rate_limit_backend == "database"
        assert security.reject_unknown_ip is True
        assert security.setup_key is None

    def test_env_prefix_override(self, monkeypatch) -> None:
        monkeypatch.setenv("SECURITY_SESSION_TTL", "3600")
        monkeypatch.setenv("SECURITY_MAX_LOGIN_ATTEMPTS", "3")
        get_settings.cache_clear()

        security = get_settings().security
        assert security.session_ttl == 3600
        assert security.max_login_attempts == 3

    def test_nested_override(self, monkeypatch) -> None:
        monkeypatch.setenv("ADMINGATE_SECURITY__LOCKOUT_DURATION", "60")
        get_settings.cache_clear()

        assert get_settings().security.lockout_duration == 60

    @pytest.mark.parametrize("field", ["session_ttl", "lockout_duration", "max_login_attempts"])
    def test_rejects_non_positive_policy(self, field: str) -> None:
        with pytest.raises(ValidationError):
            SecurityConfig(**{field: 0})

    def test_rejects_unknown_backend(self) -> None:
        with pytest.raises(ValidationError):
            SecurityConfig(rate_limit_backend="memcached")


def test_client_ip_header_precedence_default() -> None:
    assert get_settings().client_ip.headers == [
        "cf-connecting-ip",
        "x-forwarded-for",
        "x-real-ip",
        "x-vercel-forwarded-for",
    ]


def test_cookie_defaults() -> None:
    cookie = get_settings().cookie
    assert cookie.name == "admin_session"
    assert cookie.samesite == "strict"
