"""
Admin API bearer tokens.

HS256 JWTs signed with LAB_SECRET_KEY. Without the key the admin API is
disabled rather than falling back to a development secret.
"""

import os
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from jose import JWTError, jwt

ADMIN_SECRET_ENV_VAR = "LAB_SECRET_KEY"
ALGORITHM = "HS256"
ADMIN_TOKEN_TTL = timedelta(hours=24)
ADMIN_ROLE = "admin"


def get_secret_key() -> str | None:
    """Admin token signing key; None disables the admin API."""
    return os.environ.get(ADMIN_SECRET_ENV_VAR) or None


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
    now_utc: datetime | None = None,
    secret_key: str | None = None,
) -> str:
    """
    Create a signed admin API token.

    Args:
        data: Claims to encode in the token
        expires_delta: Lifetime; defaults to ADMIN_TOKEN_TTL
        now_utc: Current UTC time (for testing/determinism)
        secret_key: Signing key; defaults to LAB_SECRET_KEY

    Raises:
        RuntimeError: no signing key is configured
    """
    key = secret_key or get_secret_key()
    if not key:
        raise RuntimeError(f"{ADMIN_SECRET_ENV_VAR} is not configured")

    issued = now_utc if now_utc is not None else datetime.now(UTC)
    claims = {
        **data,
        "iat": int(issued.timestamp()),
        "exp": int((issued + (expires_delta or ADMIN_TOKEN_TTL)).timestamp()),
    }
    return cast(str, jwt.encode(claims, key, algorithm=ALGORITHM))


def create_admin_token(
    subject: str,
    expires_delta: timedelta | None = None,
    secret_key: str | None = None,
) -> str:
    return create_access_token(
        {"sub": subject, "role": ADMIN_ROLE},
        expires_delta=expires_delta,
        secret_key=secret_key,
    )


def decode_access_token(token: str, secret_key: str | None = None) -> dict[str, Any] | None:
    """Verified claims, or None for a bad, expired or unverifiable token."""
    key = secret_key or get_secret_key()
    if not key:
        return None
    try:
        return cast(dict[str, Any], jwt.decode(token, key, algorithms=[ALGORITHM]))
    except JWTError:
        return None


def is_admin(claims: dict[str, Any]) -> bool:
    return claims.get("role") == ADMIN_ROLE
