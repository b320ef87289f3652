"""Security utilities for admin-gate.

Password hashing uses Argon2id over an explicit per-account salt, so the
digest is deterministic for a given (password, salt) pair and can be stored
next to the salt. Session tokens and salts come from the `secrets` CSPRNG.
"""

import hmac
import re
import secrets
from typing import TypeGuard

from argon2.low_level import Type, hash_secret_raw

# Argon2id parameters (argon2-cffi RFC 9106 low-memory profile)
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # KiB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32  # bytes -> 64 hex characters

SALT_BYTES = 16
SESSION_TOKEN_BYTES = 32
SESSION_TOKEN_LENGTH = SESSION_TOKEN_BYTES * 2  # hex encoded

_TOKEN_RE = re.compile(r"^[a-f0-9]+$")
_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]{3,20}$")
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")
_UNSAFE_CHARS_RE = re.compile(r"[<>\"'&]")

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


def generate_salt() -> str:
    """Generate a random hex salt."""
    return secrets.token_hex(SALT_BYTES)


def generate_session_token() -> str:
    """Generate a 64 character hex session token."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def hash_password(password: str, salt: str) -> str:
    """Hash a password with the given salt using Argon2id, hex encoded."""
    digest = hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID,
    )
    return digest.hex()


def verify_password(password: str, password_hash: str, salt: str) -> bool:
    """Verify a password against its digest in constant time."""
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def burn_password_hash(password: str) -> None:
    """Spend one hash computation so unknown-user logins cost as much as real ones."""
    hash_password(password, generate_salt())


def is_valid_session_token(token: str | None) -> TypeGuard[str]:
    """Cheap shape check: fixed length, lowercase hex."""
    if not isinstance(token, str) or len(token) != SESSION_TOKEN_LENGTH:
        return False
    return bool(_TOKEN_RE.match(token))


def token_prefix(token: str) -> str:
    """Loggable token prefix (never log whole tokens)."""
    return f"{token[:8]}..."


def sanitize_input(value: str) -> str:
    """Trim and strip characters that are unsafe in HTML/SQL contexts."""
    return _UNSAFE_CHARS_RE.sub("", value.strip())


def is_valid_username(username: str) -> bool:
    """3-20 characters of letters, digits, underscore and hyphen."""
    return bool(_USERNAME_RE.match(username))


def check_password_strength(password: str) -> list[str]:
    """Return the list of unmet password rules (empty when strong)."""
    errors: list[str] = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        errors.append("Password must contain at least one special character")
    return errors
