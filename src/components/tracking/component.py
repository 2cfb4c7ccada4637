"""
Tracking component - Stateless ingress for opens, clicks and reader events.

Key behaviors:
- Open pixel is always served; logging is best effort
- Click always redirects once the destination passes the safety check
- Invalid or unusable tokens are never logged, never rejected to the reader
- Duplicates within the dedup window are suppressed
- Store failures are logged and swallowed at this boundary only

Log lines carry no subject ids, tokens or addresses.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from src.components.tokens import TokenService, TrackingClaims, parse_claims
from src.core.entities import AnalyticsEvent, EventType
from src.core.services.analytics_dedupe import (
    DedupeService,
    classify_user_agent,
    click_scope,
    open_scope,
)

from .models import (
    DEFAULT_CONFIG,
    SKIP_BAD_PAYLOAD,
    SKIP_DUPLICATE,
    SKIP_INVALID_TOKEN,
    SKIP_NO_TOKEN,
    SKIP_STORE_ERROR,
    ClickInput,
    ClickOutput,
    IngestEventInput,
    IngestionError,
    IngestOutput,
    OpenInput,
    OpenOutput,
    TrackingConfig,
)
from .ports import EventStorePort, TimePort

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = {"http", "https"}

# Optional reader metadata kept on page events
ALLOWED_EXTRA_FIELDS = frozenset({"path", "referrer", "scroll_depth"})


# --- Validation ---


def is_safe_redirect_url(url: str | None) -> bool:
    """
    Check that a click destination is an absolute http(s) URL with a host.

    Rejects javascript:, data:, scheme-relative, relative and malformed URLs.
    """
    if not url or not isinstance(url, str):
        return False

    if any(c.isspace() or ord(c) < 0x20 for c in url):
        return False

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        _ = parsed.port  # raises ValueError on a malformed port
    except ValueError:
        return False

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    if not parsed.netloc or not hostname:
        return False

    return True


def validate_ingest(
    inp: IngestEventInput,
    config: TrackingConfig = DEFAULT_CONFIG,
) -> list[IngestionError]:
    """Validate a reader-side event. PII fields are always rejected."""
    errors: list[IngestionError] = []

    if inp.event_type not in config.ingest_event_types:
        errors.append(
            IngestionError(
                code="event_type_not_allowed",
                message=f"Event type '{inp.event_type}' is not accepted",
                field_name="event_type",
            )
        )

    for name in sorted(inp.extra):
        if name in config.forbidden_fields:
            errors.append(
                IngestionError(
                    code="forbidden_field",
                    message=f"Field '{name}' is not allowed (PII)",
                    field_name=name,
                )
            )
        elif name not in ALLOWED_EXTRA_FIELDS:
            errors.append(
                IngestionError(
                    code="field_not_allowed",
                    message=f"Field '{name}' is not accepted",
                    field_name=name,
                )
            )

    if not inp.article_id:
        errors.append(
            IngestionError(
                code="article_id_required",
                message="article_id is required",
                field_name="article_id",
            )
        )

    if inp.event_type == EventType.SESSION_END.value:
        spent = inp.time_spent_seconds
        if spent is None:
            errors.append(
                IngestionError(
                    code="time_spent_required",
                    message="time_spent_seconds is required for session_end",
                    field_name="time_spent_seconds",
                )
            )
        elif not math.isfinite(spent) or spent < 0 or spent > config.max_time_spent_seconds:
            errors.append(
                IngestionError(
                    code="time_spent_out_of_range",
                    message=(
                        f"time_spent_seconds must be between 0 and "
                        f"{config.max_time_spent_seconds}"
                    ),
                    field_name="time_spent_seconds",
                )
            )

    return errors


# --- Helpers ---


def _now(time_port: TimePort | None) -> datetime:
    if time_port:
        return time_port.now_utc()
    return datetime.now(UTC)


def _verified_claims(
    token: str | None,
    tokens: TokenService,
) -> tuple[TrackingClaims | None, str | None]:
    """Verify a token and check its shape. Returns (claims, skip reason)."""
    if not token:
        return None, SKIP_NO_TOKEN

    result = tokens.verify(token)
    if not result.valid:
        logger.debug("Tracking token rejected: %s", result.error)
        return None, SKIP_INVALID_TOKEN

    claims = parse_claims(result.payload)
    if claims is None:
        logger.info("Verified tracking token lacks subject or newsletter; not logged")
        return None, SKIP_BAD_PAYLOAD

    return claims, None


# --- Entry Points ---


def run_open(
    inp: OpenInput,
    tokens: TokenService,
    store: EventStorePort,
    dedupe: DedupeService,
    time_port: TimePort | None = None,
) -> OpenOutput:
    """Record a newsletter open. Never raises for bad tokens or store errors."""
    claims, skipped = _verified_claims(inp.token, tokens)
    if claims is None:
        return OpenOutput(recorded=False, skipped=skipped)

    try:
        if dedupe.is_duplicate(open_scope(claims.subject_id, claims.newsletter_id)):
            logger.info("Duplicate open suppressed (window %ss)", dedupe.window_seconds)
            return OpenOutput(recorded=False, skipped=SKIP_DUPLICATE)

        store.append(
            AnalyticsEvent(
                event_type=EventType.OPEN,
                subject_id=claims.subject_id,
                newsletter_id=claims.newsletter_id,
                article_id=claims.article_id,
                occurred_at=_now(time_port),
                metadata={"ua_class": classify_user_agent(inp.user_agent).value},
            )
        )
    except Exception:
        logger.warning("Failed to record open event", exc_info=True)
        return OpenOutput(recorded=False, skipped=SKIP_STORE_ERROR)

    return OpenOutput(recorded=True)


def run_click(
    inp: ClickInput,
    tokens: TokenService,
    store: EventStorePort,
    dedupe: DedupeService,
    time_port: TimePort | None = None,
) -> ClickOutput:
    """Record a link click and return the redirect target."""
    if not is_safe_redirect_url(inp.url):
        return ClickOutput(redirect_url=None)

    url: str = inp.url  # type: ignore[assignment]

    claims, skipped = _verified_claims(inp.token, tokens)
    if claims is None:
        return ClickOutput(redirect_url=url, recorded=False, skipped=skipped)

    try:
        scope = click_scope(claims.subject_id, claims.newsletter_id, url)
        if dedupe.is_duplicate(scope):
            logger.info("Duplicate click suppressed (window %ss)", dedupe.window_seconds)
            return ClickOutput(redirect_url=url, recorded=False, skipped=SKIP_DUPLICATE)

        store.append(
            AnalyticsEvent(
                event_type=EventType.CLICK,
                subject_id=claims.subject_id,
                newsletter_id=claims.newsletter_id,
                article_id=claims.article_id,
                occurred_at=_now(time_port),
                metadata={
                    "target_url": url,
                    "ua_class": classify_user_agent(inp.user_agent).value,
                },
            )
        )
    except Exception:
        logger.warning("Failed to record click event", exc_info=True)
        return ClickOutput(redirect_url=url, recorded=False, skipped=SKIP_STORE_ERROR)

    return ClickOutput(redirect_url=url, recorded=True)


def run_ingest(
    inp: IngestEventInput,
    tokens: TokenService,
    store: EventStorePort,
    config: TrackingConfig = DEFAULT_CONFIG,
    time_port: TimePort | None = None,
) -> IngestOutput:
    """
    Record a reader-side page_view or session_end.

    The subject is taken only from a verified token; anything else is
    recorded anonymously.
    """
    errors = validate_ingest(inp, config)
    if errors:
        return IngestOutput(recorded=False, errors=errors)

    subject_id: str | None = None
    newsletter_id = inp.newsletter_id
    if inp.token:
        claims, _ = _verified_claims(inp.token, tokens)
        if claims is not None:
            subject_id = claims.subject_id
            newsletter_id = claims.newsletter_id

    metadata: dict[str, Any] = {
        "ua_class": classify_user_agent(inp.user_agent).value,
        **inp.extra,
    }
    if inp.time_spent_seconds is not None:
        metadata["time_spent_seconds"] = inp.time_spent_seconds

    try:
        store.append(
            AnalyticsEvent(
                event_type=EventType(inp.event_type),
                subject_id=subject_id,
                session_id=inp.session_id,
                newsletter_id=newsletter_id,
                article_id=inp.article_id,
                occurred_at=_now(time_port),
                metadata=metadata,
            )
        )
    except Exception:
        logger.warning("Failed to record %s event", inp.event_type, exc_info=True)
        return IngestOutput(recorded=False, skipped=SKIP_STORE_ERROR)

    return IngestOutput(recorded=True)
