"""
Tracking component ports.

Protocol interfaces for the append-only event store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.core.entities import AnalyticsEvent


class EventStorePort(Protocol):
    """Append-only event store with the lookup used for deduplication."""

    def append(self, event: AnalyticsEvent) -> AnalyticsEvent:
        """Append one raw event."""
        ...

    def exists_recent(
        self,
        event_type: str,
        subject_id: str,
        newsletter_id: str,
        since: datetime,
        target_url: str | None = None,
    ) -> bool:
        """Check for a matching event with occurred_at strictly after `since`."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
