"""
Analytics component input/output models.

Daily snapshot compaction and dashboard read models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

# --- Configuration ---


@dataclass(frozen=True)
class AggregationConfig:
    """Aggregation configuration."""

    view_event_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"page_view"}),
    )
    click_event_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"click"}),
    )
    open_event_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"open"}),
    )
    time_spent_event_type: str = "session_end"

    # Sessions shorter than this are bounces and excluded from the average
    min_time_spent_seconds: float = 1


DEFAULT_CONFIG = AggregationConfig()


# --- Output Models ---


@dataclass(frozen=True)
class SnapshotOutput:
    """Result of one daily snapshot run."""

    snapshot_date: date
    events_read: int
    rows_written: int
    articles: int


@dataclass(frozen=True)
class ArticleStats:
    """
    Per-article dashboard row.

    Identical whether built from snapshots or from raw events.
    """

    article_id: str
    title: str
    published_at: datetime | None
    display_order: int
    views: int
    clicks: int
    avg_time_spent: int
    avg_time_spent_formatted: str


@dataclass(frozen=True)
class NewsletterMetrics:
    """Newsletter-level engagement summary."""

    newsletter_id: str
    recipient_count: int
    unique_opens: int
    unique_clicks: int
    total_views: int
    open_rate: float
    click_to_open_rate: float
    avg_time_spent: int
    avg_time_spent_formatted: str


@dataclass(frozen=True)
class ArticleHotness:
    """
    How quickly readers reached an article after it was published.

    hotness_score is 100 for immediate reads and loses 2 points per hour of
    average delay, floored at 0.
    """

    article_id: str
    title: str
    published_at: datetime
    avg_read_latency_minutes: int
    hotness_score: int
    total_readers: int


@dataclass(frozen=True)
class TrendPoint:
    """One newsletter in an open/click rate series."""

    newsletter_id: str
    open_rate: float
    click_rate: float


# --- Error Types ---


class AggregationError(Exception):
    """Snapshot generation failed; the date's previous rows are kept."""

    def __init__(self, snapshot_date: date, reason: str) -> None:
        self.snapshot_date = snapshot_date
        self.reason = reason
        super().__init__(f"Snapshot for {snapshot_date.isoformat()} failed: {reason}")
