"""
Analytics component port definitions.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Protocol

from src.core.entities import AnalyticsEvent, AnalyticsSnapshot, ArticleSummary


class EventReaderPort(Protocol):
    """Read side of the append-only event store."""

    def list_between(self, start: datetime, end: datetime) -> list[AnalyticsEvent]:
        """Events with start <= occurred_at < end."""
        ...

    def list_for_articles(self, article_ids: Sequence[str]) -> list[AnalyticsEvent]:
        """All events attached to any of the given articles."""
        ...

    def list_for_newsletter(self, newsletter_id: str) -> list[AnalyticsEvent]:
        """All events attached to a newsletter."""
        ...


class SnapshotRepoPort(Protocol):
    """Snapshot table owned by the aggregation engine."""

    def replace_for_date(self, snapshot_date: date, rows: Sequence[AnalyticsSnapshot]) -> int:
        """Delete the date's rows and insert `rows` atomically. Returns rows written."""
        ...

    def list_for_articles(self, article_ids: Sequence[str]) -> list[AnalyticsSnapshot]:
        """All snapshot rows for the given articles, any date."""
        ...


class ArticleCatalogPort(Protocol):
    """Read-only article metadata owned by the CMS."""

    def list_for_newsletter(self, newsletter_id: str) -> list[ArticleSummary]:
        """Articles belonging to a newsletter."""
        ...
