"""
Domain entities for newsletter tracking and engagement analytics.

- TrackingTokenRecord: persisted hash of an issued tracking token (revocation)
- AnalyticsEvent: append-only raw engagement event
- AnalyticsSnapshot: derived per-article daily metric row
- ArticleSummary: read-only article metadata owned by the CMS
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

__all__ = [
    "AnalyticsEvent",
    "AnalyticsSnapshot",
    "ArticleSummary",
    "EventType",
    "MetricName",
    "TrackingTokenRecord",
]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EventType(str, Enum):
    """Raw engagement event types."""

    OPEN = "open"
    CLICK = "click"
    PAGE_VIEW = "page_view"
    SESSION_END = "session_end"


class MetricName(str, Enum):
    """Snapshot metric names."""

    TOTAL_VIEWS = "total_views"
    TOTAL_CLICKS = "total_clicks"
    AVG_TIME_SPENT = "avg_time_spent"


# --- Tracking tokens ---


class TrackingTokenRecord(BaseModel):
    """
    Persisted record of an issued tracking token.

    Invariants:
    - token_hash is SHA-256 hex over the full token string (64 chars)
    - records are flagged revoked, never deleted
    """

    token_hash: str = Field(min_length=64, max_length=64)
    subject_id: str | None = None
    issued_payload: dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime
    revoked: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


# --- Raw events ---


class AnalyticsEvent(BaseModel):
    """
    Raw engagement event.

    Invariants:
    - append-only: never updated or deleted
    - metadata carries no raw IP or user agent (ua_class only)
    """

    id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    subject_id: str | None = None
    session_id: str | None = None
    newsletter_id: str | None = None
    article_id: str | None = None
    occurred_at: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


# --- Derived snapshots ---


class AnalyticsSnapshot(BaseModel):
    """
    Per-article daily metric row.

    Key: (snapshot_date, article_id, metric_name). Rows exist only for
    metrics with at least one contributing event.
    """

    snapshot_date: date
    article_id: str
    metric_name: MetricName
    metric_value: float
    newsletter_id: str | None = None


# --- CMS metadata (read-only) ---


class ArticleSummary(BaseModel):
    """Article metadata used to label and order dashboard rows."""

    id: str
    newsletter_id: str
    title: str
    published_at: datetime | None = None
    display_order: int = 999
