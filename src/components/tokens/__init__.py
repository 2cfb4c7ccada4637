"""
Tokens component - Signed, expiring, revocable tracking tokens.
"""

from ._impl import InMemoryTokenRepo
from .component import (
    SECRET_ENV_VAR,
    TokenService,
    create_token_service,
    decode_unverified,
    has_canonical_signature,
    hash_token,
    is_well_formed,
    parse_claims,
)
from .models import (
    ERROR_EXPIRED,
    ERROR_INVALID_SIGNATURE,
    ERROR_MALFORMED,
    ERROR_REVOCATION_UNAVAILABLE,
    ERROR_REVOKED,
    ConfigurationError,
    TokenConfig,
    TokenError,
    TrackingClaims,
    VerifyTokenOutput,
)
from .ports import TimePort, TokenRepoPort

__all__ = [
    # Service
    "TokenService",
    "create_token_service",
    "SECRET_ENV_VAR",
    # Pure functions
    "hash_token",
    "is_well_formed",
    "has_canonical_signature",
    "decode_unverified",
    "parse_claims",
    # Models
    "TokenConfig",
    "TrackingClaims",
    "VerifyTokenOutput",
    "TokenError",
    "ConfigurationError",
    # Error codes
    "ERROR_MALFORMED",
    "ERROR_INVALID_SIGNATURE",
    "ERROR_EXPIRED",
    "ERROR_REVOKED",
    "ERROR_REVOCATION_UNAVAILABLE",
    # Ports
    "TokenRepoPort",
    "TimePort",
    # Dev/test adapters
    "InMemoryTokenRepo",
]
