"""
Tokens component models.

Signed tracking tokens embedded in newsletter pixels and links.

State machine (per token):
- issued -> active (well-formed, signed, unexpired, unrevoked)
- active -> expired | revoked (both terminal)
Verification never changes state; tokens are reusable, not one-time nonces.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# --- Verification error codes ---

ERROR_MALFORMED = "malformed"
ERROR_INVALID_SIGNATURE = "invalid_signature"
ERROR_EXPIRED = "expired"
ERROR_REVOKED = "revoked"
ERROR_REVOCATION_UNAVAILABLE = "revocation_unavailable"


# --- Configuration ---


@dataclass(frozen=True)
class TokenConfig:
    """Token signing configuration."""

    secret: str | None = None
    lifetime_days: int = 14
    algorithm: str = "HS256"


# --- Claims ---


@dataclass(frozen=True)
class TrackingClaims:
    """
    Validated tracking token claims.

    Built only from a payload carrying non-empty subject and newsletter
    identifiers, so downstream code never handles a half-empty token.
    """

    subject_id: str
    newsletter_id: str
    issued_at: int
    expires_at: int
    token_id: str
    article_id: str | None = None


# --- Output Models ---


@dataclass(frozen=True)
class VerifyTokenOutput:
    """Result of token verification. Failures are values, not exceptions."""

    valid: bool
    payload: dict[str, Any] | None = None
    error: str | None = None


# --- Error Types ---


class TokenError(Exception):
    """Base token error."""

    pass


class ConfigurationError(TokenError):
    """Signing configuration is missing or unusable (deployment mistake)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Token configuration error: {reason}")
