"""
In-memory analytics stores for testing/dev.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime

from src.core.entities import AnalyticsEvent, AnalyticsSnapshot, ArticleSummary

from ._aggregate import as_utc


class InMemoryEventStore:
    """Append-only event list implementing the ingress and reader ports."""

    def __init__(self) -> None:
        self._events: list[AnalyticsEvent] = []

    def append(self, event: AnalyticsEvent) -> AnalyticsEvent:
        self._events.append(event)
        return event

    def exists_recent(
        self,
        event_type: str,
        subject_id: str,
        newsletter_id: str,
        since: datetime,
        target_url: str | None = None,
    ) -> bool:
        since = as_utc(since)
        for event in self._events:
            if (
                event.event_type.value == event_type
                and event.subject_id == subject_id
                and event.newsletter_id == newsletter_id
                and as_utc(event.occurred_at) > since
                and (target_url is None or event.metadata.get("target_url") == target_url)
            ):
                return True
        return False

    def list_between(self, start: datetime, end: datetime) -> list[AnalyticsEvent]:
        start, end = as_utc(start), as_utc(end)
        return [e for e in self._events if start <= as_utc(e.occurred_at) < end]

    def list_for_articles(self, article_ids: Sequence[str]) -> list[AnalyticsEvent]:
        wanted = set(article_ids)
        return [e for e in self._events if e.article_id in wanted]

    def list_for_newsletter(self, newsletter_id: str) -> list[AnalyticsEvent]:
        return [e for e in self._events if e.newsletter_id == newsletter_id]

    def get_all(self) -> list[AnalyticsEvent]:
        """Get all stored events (for testing)."""
        return list(self._events)


class InMemorySnapshotRepo:
    """Snapshot rows keyed by (date, article, metric)."""

    def __init__(self) -> None:
        self._rows: list[AnalyticsSnapshot] = []

    def replace_for_date(self, snapshot_date: date, rows: Sequence[AnalyticsSnapshot]) -> int:
        kept = [r for r in self._rows if r.snapshot_date != snapshot_date]
        self._rows = kept + list(rows)
        return len(rows)

    def list_for_articles(self, article_ids: Sequence[str]) -> list[AnalyticsSnapshot]:
        wanted = set(article_ids)
        return [r for r in self._rows if r.article_id in wanted]

    def get_all(self) -> list[AnalyticsSnapshot]:
        """Get all rows (for testing)."""
        return list(self._rows)


class InMemoryArticleCatalog:
    """Fixed article list."""

    def __init__(self, articles: Sequence[ArticleSummary] = ()) -> None:
        self._articles = list(articles)

    def add(self, article: ArticleSummary) -> None:
        self._articles.append(article)

    def list_for_newsletter(self, newsletter_id: str) -> list[ArticleSummary]:
        return [a for a in self._articles if a.newsletter_id == newsletter_id]
