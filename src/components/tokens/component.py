"""
Tokens component - Signed tracking tokens for newsletter pixels and links.

Mints, verifies, hashes and revokes compact HS256-signed tokens.

Key behaviors:
- Wire form: base64url(header).base64url(payload).base64url(signature)
- Verification order: structure -> signature -> expiry -> revocation
- Verification failures are returned, never raised
- Revocation keyed by SHA-256 of the full token; needs no signing secret

Invariants:
- Missing signing secret is a configuration error, raised on first use
- Revocation is durable (persistent store), idempotent and terminal
"""

from __future__ import annotations

import binascii
import hashlib
import logging
import math
import re
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from jose import jws, jwt
from jose.exceptions import JWSError, JWTError
from jose.utils import base64url_decode, base64url_encode

from src.core.entities import TrackingTokenRecord

from .models import (
    ERROR_EXPIRED,
    ERROR_INVALID_SIGNATURE,
    ERROR_MALFORMED,
    ERROR_REVOCATION_UNAVAILABLE,
    ERROR_REVOKED,
    ConfigurationError,
    TokenConfig,
    TrackingClaims,
    VerifyTokenOutput,
)
from .ports import TimePort, TokenRepoPort

logger = logging.getLogger(__name__)

SECRET_ENV_VAR = "TRACKING_TOKEN_SECRET"

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")


# --- Pure Functions (Functional Core) ---


def hash_token(token: str) -> str:
    """SHA-256 hex digest (64 chars) of the full token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_well_formed(token: Any) -> bool:
    """Exactly three non-empty base64url segments joined by '.'."""
    if not isinstance(token, str) or not token:
        return False
    parts = token.split(".")
    if len(parts) != 3:
        return False
    return all(_SEGMENT_RE.match(part) for part in parts)


def has_canonical_signature(token: str) -> bool:
    """
    The signature segment is the exact base64url encoding of its bytes.

    Lenient decoding ignores the spare low bits of the last character, so
    several spellings decode to one signature. Only the canonical one is
    accepted, which keeps one hash per token for revocation.
    """
    signature = token.rsplit(".", 1)[-1]
    try:
        raw = base64url_decode(signature.encode("ascii"))
    except (binascii.Error, ValueError):
        return False
    return bool(base64url_encode(raw).decode("ascii") == signature)


def decode_unverified(token: str) -> dict[str, Any] | None:
    """
    Decode the payload segment without checking the signature.

    Only for bookkeeping (expiry and subject of a record); never for trust.
    """
    if not is_well_formed(token):
        return None
    try:
        return jwt.get_unverified_claims(token)
    except (JWTError, JWSError):
        return None


def _non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _int_claim(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def parse_claims(payload: dict[str, Any] | None) -> TrackingClaims | None:
    """
    Check the minimum usable shape of a verified payload.

    A valid signature does not guarantee usable fields: subject and
    newsletter identifiers must both be non-empty strings.
    """
    if not isinstance(payload, dict):
        return None

    subject_id = _non_empty_str(payload.get("sub"))
    newsletter_id = _non_empty_str(payload.get("nwl"))
    if subject_id is None or newsletter_id is None:
        return None

    return TrackingClaims(
        subject_id=subject_id,
        newsletter_id=newsletter_id,
        issued_at=_int_claim(payload.get("iat")) or 0,
        expires_at=_int_claim(payload.get("exp")) or 0,
        token_id=_non_empty_str(payload.get("jti")) or "",
        article_id=_non_empty_str(payload.get("art")),
    )


# --- Token Service ---


class TokenService:
    """
    Tracking token service.

    Signing secret is only needed to generate and verify; hashing, storing
    and revoking work on the token string alone.
    """

    def __init__(
        self,
        repo: TokenRepoPort,
        config: TokenConfig | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._repo = repo
        self._config = config or TokenConfig()
        self._time_port = time_port

    def _now(self) -> datetime:
        if self._time_port:
            return self._time_port.now_utc()
        return datetime.now(UTC)

    def _secret(self) -> str:
        if not self._config.secret:
            raise ConfigurationError(f"{SECRET_ENV_VAR} is not configured")
        return self._config.secret

    def ensure_configured(self) -> None:
        """Fail fast at startup if the signing secret is missing."""
        self._secret()

    @property
    def lifetime(self) -> timedelta:
        return timedelta(days=self._config.lifetime_days)

    def generate(self, subject_id: str | None, payload: dict[str, Any] | None = None) -> str:
        """
        Mint a signed token.

        Caller fields are kept; sub, iat, exp and jti are always set here.
        """
        secret = self._secret()
        now = int(self._now().timestamp())

        claims = {
            **(payload or {}),
            "sub": subject_id,
            "iat": now,
            "exp": now + int(self.lifetime.total_seconds()),
            "jti": str(uuid4()),
        }
        token: str = jwt.encode(claims, secret, algorithm=self._config.algorithm)
        return token

    def verify(self, token: str | None) -> VerifyTokenOutput:
        """
        Verify a token: structure, signature, expiry, then revocation.

        Cheapest checks short-circuit first. Only ConfigurationError escapes.
        """
        secret = self._secret()

        if token is None or not is_well_formed(token):
            return VerifyTokenOutput(valid=False, error=ERROR_MALFORMED)

        try:
            payload = jwt.get_unverified_claims(token)
        except (JWTError, JWSError):
            return VerifyTokenOutput(valid=False, error=ERROR_MALFORMED)

        if not has_canonical_signature(token):
            return VerifyTokenOutput(valid=False, error=ERROR_INVALID_SIGNATURE)

        try:
            # HMAC comparison inside jose uses hmac.compare_digest
            jws.verify(token, secret, algorithms=[self._config.algorithm])
        except JWSError:
            return VerifyTokenOutput(valid=False, error=ERROR_INVALID_SIGNATURE)

        expires_at = _int_claim(payload.get("exp"))
        if expires_at is None:
            return VerifyTokenOutput(valid=False, error=ERROR_MALFORMED)
        if self._now().timestamp() >= expires_at:
            return VerifyTokenOutput(valid=False, error=ERROR_EXPIRED)

        try:
            revoked = self._repo.is_revoked(hash_token(token))
        except Exception:
            logger.warning("Revocation lookup failed; rejecting token", exc_info=True)
            return VerifyTokenOutput(valid=False, error=ERROR_REVOCATION_UNAVAILABLE)

        if revoked:
            return VerifyTokenOutput(valid=False, error=ERROR_REVOKED)

        return VerifyTokenOutput(valid=True, payload=payload)

    def hash(self, token: str) -> str:
        """SHA-256 hex digest of the full token string."""
        return hash_token(token)

    def _expiry_from_payload(self, payload: dict[str, Any] | None) -> datetime:
        expires_at = _int_claim(payload.get("exp")) if payload else None
        if expires_at is not None:
            try:
                return datetime.fromtimestamp(expires_at, UTC)
            except (OverflowError, OSError, ValueError):
                logger.warning(
                    "Unrepresentable token expiry %r; using default lifetime", expires_at
                )
        return self._now() + self.lifetime

    def store(
        self,
        token: str,
        subject_id: str | None,
        payload: dict[str, Any] | None = None,
    ) -> TrackingTokenRecord:
        """
        Persist the token hash, subject and expiry for revocation and audit.

        Storing the same token twice keeps the first record.
        """
        decoded = decode_unverified(token)
        record = TrackingTokenRecord(
            token_hash=hash_token(token),
            subject_id=subject_id,
            issued_payload=payload if payload is not None else (decoded or {}),
            expires_at=self._expiry_from_payload(decoded),
            revoked=False,
            created_at=self._now(),
        )
        return self._repo.save(record)

    def revoke(self, token: str) -> bool:
        """
        Revoke one token. Idempotent. Returns True if the hash is now revoked.

        A decodable token that was never stored gets a revoked record so the
        revocation still holds; an undecodable string is a no-op.
        """
        token_hash = hash_token(token)
        if self._repo.mark_revoked(token_hash):
            logger.info("Tracking token revoked")
            return True

        decoded = decode_unverified(token)
        if decoded is None:
            return False

        subject = decoded.get("sub")
        self._repo.save(
            TrackingTokenRecord(
                token_hash=token_hash,
                subject_id=subject if isinstance(subject, str) else None,
                issued_payload=decoded,
                expires_at=self._expiry_from_payload(decoded),
                revoked=True,
                created_at=self._now(),
            )
        )
        # save() keeps an existing row; flag again in case one raced in
        self._repo.mark_revoked(token_hash)
        logger.info("Unstored tracking token recorded as revoked")
        return True

    def revoke_all_for_subject(self, subject_id: str) -> int:
        """Revoke every stored token of a subject ("logout everywhere")."""
        count = self._repo.mark_revoked_for_subject(subject_id)
        logger.info("Revoked %d tracking tokens for subject", count)
        return count


def create_token_service(
    repo: TokenRepoPort,
    secret: str | None,
    lifetime_days: int = 14,
    time_port: TimePort | None = None,
) -> TokenService:
    """Factory for a token service."""
    return TokenService(
        repo=repo,
        config=TokenConfig(secret=secret, lifetime_days=lifetime_days),
        time_port=time_port,
    )
