"""
Snapshot aggregation - Pure functions shared by the batch job and the read path.

Key behaviors:
- Events are grouped per article and per UTC day
- total_views / total_clicks count configured event types
- avg_time_spent is the round-half-up mean of session durations
- Rows are sparse: a zero metric produces no row
- The raw-event fallback builds the same rows and folds them the same way
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta

from src.core.entities import AnalyticsEvent, AnalyticsSnapshot, ArticleSummary, MetricName

from .models import DEFAULT_CONFIG, AggregationConfig, ArticleHotness, ArticleStats

NO_DURATION = "-"


# --- Time helpers ---


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open [start, end) UTC range covering one calendar day."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def event_day(event: AnalyticsEvent) -> date:
    return as_utc(event.occurred_at).date()


# --- Arithmetic ---


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def mean_rounded(values: Sequence[float]) -> int:
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def format_duration(seconds: float | None) -> str:
    """
    Human-readable duration: '45s', '2m 5s', '2m', '1h 3m', '1h'.

    Non-positive or missing durations render as '-'.
    """
    if seconds is None or seconds <= 0:
        return NO_DURATION

    total = int(seconds)
    if total < 60:
        return f"{total}s"

    mins, secs = divmod(total, 60)
    if mins < 60:
        return f"{mins}m {secs}s" if secs > 0 else f"{mins}m"

    hours, mins = divmod(mins, 60)
    return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"


# --- Accumulation ---


@dataclass
class ArticleAccumulator:
    """Running counts for one article within one day."""

    newsletter_id: str | None = None
    views: int = 0
    clicks: int = 0
    durations: list[float] = field(default_factory=list)


def time_spent_of(event: AnalyticsEvent, config: AggregationConfig) -> float | None:
    """Usable session duration of an event, or None."""
    if event.event_type.value != config.time_spent_event_type:
        return None
    raw = event.metadata.get("time_spent_seconds")
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    if not math.isfinite(raw) or raw < config.min_time_spent_seconds:
        return None
    return float(raw)


def accumulate(
    events: Iterable[AnalyticsEvent],
    config: AggregationConfig = DEFAULT_CONFIG,
) -> dict[str, ArticleAccumulator]:
    """Group events by article. Events without an article are ignored."""
    groups: dict[str, ArticleAccumulator] = {}

    for event in events:
        if not event.article_id:
            continue

        acc = groups.setdefault(event.article_id, ArticleAccumulator())
        if acc.newsletter_id is None and event.newsletter_id:
            acc.newsletter_id = event.newsletter_id

        event_type = event.event_type.value
        if event_type in config.view_event_types:
            acc.views += 1
        if event_type in config.click_event_types:
            acc.clicks += 1

        spent = time_spent_of(event, config)
        if spent is not None:
            acc.durations.append(spent)

    return groups


def compute_snapshot_rows(
    snapshot_date: date,
    events: Iterable[AnalyticsEvent],
    config: AggregationConfig = DEFAULT_CONFIG,
) -> list[AnalyticsSnapshot]:
    """Sparse snapshot rows for one day's events."""
    rows: list[AnalyticsSnapshot] = []

    for article_id, acc in sorted(accumulate(events, config).items()):
        metrics: list[tuple[MetricName, float]] = []
        if acc.views > 0:
            metrics.append((MetricName.TOTAL_VIEWS, acc.views))
        if acc.clicks > 0:
            metrics.append((MetricName.TOTAL_CLICKS, acc.clicks))
        if acc.durations:
            avg = mean_rounded(acc.durations)
            if avg > 0:
                metrics.append((MetricName.AVG_TIME_SPENT, avg))

        rows.extend(
            AnalyticsSnapshot(
                snapshot_date=snapshot_date,
                article_id=article_id,
                metric_name=name,
                metric_value=value,
                newsletter_id=acc.newsletter_id,
            )
            for name, value in metrics
        )

    return rows


def rows_from_raw_events(
    events: Iterable[AnalyticsEvent],
    config: AggregationConfig = DEFAULT_CONFIG,
) -> list[AnalyticsSnapshot]:
    """Virtual snapshot rows: one compute_snapshot_rows per UTC day."""
    by_day: dict[date, list[AnalyticsEvent]] = defaultdict(list)
    for event in events:
        by_day[event_day(event)].append(event)

    rows: list[AnalyticsSnapshot] = []
    for day in sorted(by_day):
        rows.extend(compute_snapshot_rows(day, by_day[day], config))
    return rows


# --- Folding ---


def fold_snapshot_rows(
    rows: Iterable[AnalyticsSnapshot],
    articles: Sequence[ArticleSummary],
) -> list[ArticleStats]:
    """
    Fold daily rows into one dashboard row per catalog article.

    Views and clicks are summed; avg_time_spent is the rounded mean of the
    daily averages. Rows for articles outside the catalog are dropped.
    """
    views: dict[str, float] = defaultdict(float)
    clicks: dict[str, float] = defaultdict(float)
    daily_avgs: dict[str, list[float]] = defaultdict(list)

    for row in rows:
        if row.metric_name == MetricName.TOTAL_VIEWS:
            views[row.article_id] += row.metric_value
        elif row.metric_name == MetricName.TOTAL_CLICKS:
            clicks[row.article_id] += row.metric_value
        elif row.metric_name == MetricName.AVG_TIME_SPENT:
            daily_avgs[row.article_id].append(row.metric_value)

    stats = []
    for article in articles:
        avg = mean_rounded(daily_avgs.get(article.id, []))
        stats.append(
            ArticleStats(
                article_id=article.id,
                title=article.title,
                published_at=article.published_at,
                display_order=article.display_order,
                views=int(views.get(article.id, 0)),
                clicks=int(clicks.get(article.id, 0)),
                avg_time_spent=avg,
                avg_time_spent_formatted=format_duration(avg),
            )
        )

    return sorted(stats, key=lambda s: (s.display_order, s.article_id))


# --- Hotness ---


def hotness_score(avg_latency_minutes: float) -> int:
    """100 for an immediate read, minus 2 per hour of delay, never below 0."""
    return max(0, round_half_up(100 - (avg_latency_minutes / 60) * 2))


def compute_hotness(
    events: Iterable[AnalyticsEvent],
    articles: Sequence[ArticleSummary],
    config: AggregationConfig = DEFAULT_CONFIG,
) -> list[ArticleHotness]:
    """
    Per-article read latency from each subject's first view.

    Anonymous views are ignored; they cannot be tied to a first read.
    Articles without a publish time or without identified readers are left
    out. Views before publication count as zero delay.
    """
    published: dict[str, tuple[ArticleSummary, datetime]] = {
        a.id: (a, a.published_at) for a in articles if a.published_at is not None
    }
    first_views: dict[str, dict[str, datetime]] = defaultdict(dict)

    for event in events:
        if event.event_type.value not in config.view_event_types:
            continue
        article_id = event.article_id
        if not event.subject_id or not article_id or article_id not in published:
            continue
        seen = first_views[article_id]
        when = as_utc(event.occurred_at)
        if event.subject_id not in seen or when < seen[event.subject_id]:
            seen[event.subject_id] = when

    results = []
    for article_id, seen in first_views.items():
        article, published_at = published[article_id]
        start = as_utc(published_at)
        latencies = [max(0.0, (when - start).total_seconds() / 60) for when in seen.values()]
        avg = sum(latencies) / len(latencies)
        results.append(
            ArticleHotness(
                article_id=article_id,
                title=article.title,
                published_at=start,
                avg_read_latency_minutes=round_half_up(avg),
                hotness_score=hotness_score(avg),
                total_readers=len(seen),
            )
        )

    by_order = {a.id: a.display_order for a in articles}
    return sorted(
        results, key=lambda h: (-h.hotness_score, by_order[h.article_id], h.article_id)
    )
