"""
Tracking component models.

Ingress for newsletter opens (pixel), clicks (redirect) and reader-side
page events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# --- Beacon ---

# 1x1 transparent GIF89a, 35 bytes
TRANSPARENT_GIF = bytes(
    [
        0x47, 0x49, 0x46, 0x38, 0x39, 0x61, 0x01, 0x00, 0x01, 0x00, 0x80,
        0x00, 0x00, 0xFF, 0xFF, 0xFF, 0x00, 0x00, 0x00, 0x2C, 0x00, 0x00,
        0x00, 0x00, 0x01, 0x00, 0x01, 0x00, 0x00, 0x02, 0x02, 0x44, 0x01,
        0x00, 0x3B,
    ]
)  # fmt: skip

GIF_MEDIA_TYPE = "image/gif"

BEACON_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

REDIRECT_HEADERS = {
    "Cache-Control": "no-store",
}


# --- Skip reasons (why nothing was logged) ---

SKIP_NO_TOKEN = "no_token"
SKIP_INVALID_TOKEN = "invalid_token"
SKIP_BAD_PAYLOAD = "bad_payload"
SKIP_DUPLICATE = "duplicate"
SKIP_STORE_ERROR = "store_error"


# --- Configuration ---


@dataclass(frozen=True)
class TrackingConfig:
    """Ingress configuration."""

    # Reader-side events accepted by the ingest endpoint
    ingest_event_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"page_view", "session_end"}),
    )

    # PII never accepted from clients
    forbidden_fields: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {
                "ip",
                "ip_address",
                "user_agent",
                "ua_raw",
                "cookie",
                "cookie_id",
                "email",
                "name",
                "phone",
            }
        ),
    )

    # Upper bound on a single session (24h); longer values are rejected
    max_time_spent_seconds: int = 86400


DEFAULT_CONFIG = TrackingConfig()


# --- Validation Errors ---


@dataclass(frozen=True)
class IngestionError:
    """Reader event validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class OpenInput:
    """Input for a pixel open."""

    token: str | None
    user_agent: str | None = None


@dataclass(frozen=True)
class ClickInput:
    """Input for a tracked link click."""

    token: str | None
    url: str | None
    user_agent: str | None = None


@dataclass(frozen=True)
class IngestEventInput:
    """Input for a reader-side page event."""

    event_type: str
    token: str | None = None
    session_id: str | None = None
    newsletter_id: str | None = None
    article_id: str | None = None
    time_spent_seconds: float | None = None
    user_agent: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


# --- Output Models ---


@dataclass(frozen=True)
class OpenOutput:
    """Output of a pixel open. The pixel itself is always served."""

    recorded: bool
    skipped: str | None = None


@dataclass(frozen=True)
class ClickOutput:
    """Output of a click. redirect_url is None only for an unsafe destination."""

    redirect_url: str | None
    recorded: bool = False
    skipped: str | None = None


@dataclass(frozen=True)
class IngestOutput:
    """Output of a reader-side event."""

    recorded: bool
    errors: list[IngestionError] = field(default_factory=list)
    skipped: str | None = None
