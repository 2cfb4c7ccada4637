"""
Analytics component - Daily snapshot compaction and dashboard reads.

Invariants:
- Snapshot rows are sparse (no zero-valued rows)
- Regenerating a date replaces exactly that date's rows, atomically
- The raw-event fallback yields the same ArticleStats as the snapshot path
- Events without an article never reach a snapshot
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from ._aggregate import (
    accumulate,
    compute_hotness,
    compute_snapshot_rows,
    format_duration,
    fold_snapshot_rows,
    mean_rounded,
    rows_from_raw_events,
    time_spent_of,
    utc_day_bounds,
)
from .models import (
    DEFAULT_CONFIG,
    AggregationConfig,
    AggregationError,
    ArticleHotness,
    ArticleStats,
    NewsletterMetrics,
    SnapshotOutput,
    TrendPoint,
)
from .ports import ArticleCatalogPort, EventReaderPort, SnapshotRepoPort

logger = logging.getLogger(__name__)


class AggregationEngine:
    """Batch snapshot writer and dashboard reader."""

    def __init__(
        self,
        events: EventReaderPort,
        snapshots: SnapshotRepoPort,
        catalog: ArticleCatalogPort,
        config: AggregationConfig | None = None,
    ) -> None:
        self._events = events
        self._snapshots = snapshots
        self._catalog = catalog
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> AggregationConfig:
        return self._config

    def generate_daily_snapshot(self, snapshot_date: date) -> SnapshotOutput:
        """
        Compact one UTC day of raw events into snapshot rows.

        Safe to re-run: the date's previous rows are replaced. On failure the
        previous rows are kept and AggregationError is raised.
        """
        start, end = utc_day_bounds(snapshot_date)
        logger.info("Generating analytics snapshot for %s", snapshot_date.isoformat())

        try:
            events = self._events.list_between(start, end)
            rows = compute_snapshot_rows(snapshot_date, events, self._config)
            written = self._snapshots.replace_for_date(snapshot_date, rows)
        except Exception as exc:
            logger.error("Snapshot for %s failed", snapshot_date.isoformat(), exc_info=True)
            raise AggregationError(snapshot_date, str(exc)) from exc

        articles = len({row.article_id for row in rows})
        logger.info(
            "Snapshot for %s: %d events, %d rows across %d articles",
            snapshot_date.isoformat(),
            len(events),
            written,
            articles,
        )
        return SnapshotOutput(
            snapshot_date=snapshot_date,
            events_read=len(events),
            rows_written=written,
            articles=articles,
        )

    def get_article_stats_with_fallback(self, newsletter_id: str) -> list[ArticleStats]:
        """
        Per-article stats for a newsletter.

        Snapshots take precedence. With no snapshot rows (or a failed
        snapshot query) the same rows are computed from raw events.
        """
        articles = self._catalog.list_for_newsletter(newsletter_id)
        if not articles:
            return []

        article_ids = [a.id for a in articles]

        try:
            rows = self._snapshots.list_for_articles(article_ids)
        except Exception:
            logger.warning(
                "Snapshot query failed for newsletter %s; falling back to raw events",
                newsletter_id,
                exc_info=True,
            )
            rows = []

        if rows:
            return fold_snapshot_rows(rows, articles)

        logger.info("No snapshots for newsletter %s; aggregating raw events", newsletter_id)
        events = self._events.list_for_articles(article_ids)
        return fold_snapshot_rows(rows_from_raw_events(events, self._config), articles)

    def get_newsletter_metrics(
        self,
        newsletter_id: str,
        recipient_count: int = 0,
    ) -> NewsletterMetrics:
        """
        Newsletter-level summary straight from raw events.

        Rates are percentages; a zero denominator gives 0.0.
        """
        events = self._events.list_for_newsletter(newsletter_id)
        config = self._config

        openers = {
            e.subject_id
            for e in events
            if e.event_type.value in config.open_event_types and e.subject_id
        }
        clickers = {
            e.subject_id
            for e in events
            if e.event_type.value in config.click_event_types and e.subject_id
        }
        total_views = sum(acc.views for acc in accumulate(events, config).values())
        durations = [
            spent for spent in (time_spent_of(e, config) for e in events) if spent is not None
        ]
        avg = mean_rounded(durations)

        open_rate = len(openers) / recipient_count * 100 if recipient_count > 0 else 0.0
        click_to_open = len(clickers) / len(openers) * 100 if openers else 0.0

        return NewsletterMetrics(
            newsletter_id=newsletter_id,
            recipient_count=recipient_count,
            unique_opens=len(openers),
            unique_clicks=len(clickers),
            total_views=total_views,
            open_rate=round(open_rate, 1),
            click_to_open_rate=round(click_to_open, 1),
            avg_time_spent=avg,
            avg_time_spent_formatted=format_duration(avg),
        )

    def get_topic_hotness(self, newsletter_id: str) -> list[ArticleHotness]:
        """Articles of a newsletter ranked by how fast readers reached them."""
        articles = self._catalog.list_for_newsletter(newsletter_id)
        if not articles:
            return []

        events = self._events.list_for_articles([a.id for a in articles])
        return compute_hotness(events, articles, self._config)

    def get_trend_stats(
        self,
        newsletter_ids: Sequence[str],
        recipient_count: int = 0,
    ) -> list[TrendPoint]:
        """
        Open and click rates for several newsletters, in the order given.

        A newsletter whose metrics cannot be read appears with zero rates so
        the series keeps its shape.
        """
        points = []
        for newsletter_id in newsletter_ids:
            try:
                metrics = self.get_newsletter_metrics(newsletter_id, recipient_count)
            except Exception:
                logger.error(
                    "Trend metrics for newsletter %s failed", newsletter_id, exc_info=True
                )
                points.append(
                    TrendPoint(newsletter_id=newsletter_id, open_rate=0.0, click_rate=0.0)
                )
                continue
            points.append(
                TrendPoint(
                    newsletter_id=newsletter_id,
                    open_rate=metrics.open_rate,
                    click_rate=metrics.click_to_open_rate,
                )
            )
        return points


def create_aggregation_engine(
    events: EventReaderPort,
    snapshots: SnapshotRepoPort,
    catalog: ArticleCatalogPort,
    view_event_types: frozenset[str] | None = None,
    min_time_spent_seconds: float | None = None,
) -> AggregationEngine:
    """Factory for an aggregation engine from rules values."""
    config = AggregationConfig(
        view_event_types=view_event_types or DEFAULT_CONFIG.view_event_types,
        min_time_spent_seconds=(
            min_time_spent_seconds
            if min_time_spent_seconds is not None
            else DEFAULT_CONFIG.min_time_spent_seconds
        ),
    )
    return AggregationEngine(events=events, snapshots=snapshots, catalog=catalog, config=config)
