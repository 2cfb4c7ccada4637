"""
AnalyticsDedupeService - Duplicate suppression for tracked opens and clicks.

Handles dedup-window clamping, dedup scopes and user agent classification.

Key behaviors:
- Dedupe within a configurable window (default 10s, clamped to [1s, 300s])
- Opens are scoped by (subject, newsletter)
- Clicks are scoped by (subject, newsletter, destination URL)
- Check-then-insert is not locked; a race may record one extra duplicate
- Privacy-preserving (user agents reduced to a bot/real/unknown class)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Protocol

from src.core.entities import EventType

# --- Window limits ---

DEFAULT_WINDOW_SECONDS = 10
MIN_WINDOW_SECONDS = 1
MAX_WINDOW_SECONDS = 300


def clamp_window_seconds(seconds: float | None) -> int:
    """
    Clamp a dedup window into [MIN_WINDOW_SECONDS, MAX_WINDOW_SECONDS].

    A near-zero window would stop suppressing duplicates; a huge one would
    swallow legitimate repeat engagement.
    """
    if seconds is None:
        return DEFAULT_WINDOW_SECONDS
    return int(max(MIN_WINDOW_SECONDS, min(MAX_WINDOW_SECONDS, seconds)))


# --- Enums ---


class UAClass(str, Enum):
    """User agent classification."""

    BOT = "bot"
    REAL = "real"
    UNKNOWN = "unknown"


# --- Configuration ---


@dataclass(frozen=True)
class DedupeConfig:
    """Deduplication configuration."""

    enabled: bool = True
    window_seconds: int = DEFAULT_WINDOW_SECONDS

    bot_patterns: tuple[str, ...] = (
        "bot",
        "crawler",
        "spider",
        "curl",
        "wget",
        "python-requests",
        "go-http-client",
        "googleimageproxy",
        "yahoomailproxy",
        "facebookexternalhit",
        "slackbot",
        "linkedinbot",
    )

    real_browser_patterns: tuple[str, ...] = (
        "mozilla/5.0",
        "chrome/",
        "firefox/",
        "safari/",
        "edge/",
        "thunderbird/",
    )

    @property
    def effective_window_seconds(self) -> int:
        return clamp_window_seconds(self.window_seconds)


DEFAULT_CONFIG = DedupeConfig()


def classify_user_agent(
    user_agent: str | None,
    config: DedupeConfig = DEFAULT_CONFIG,
) -> UAClass:
    """Classify a user agent string as BOT, REAL or UNKNOWN."""
    if not user_agent:
        return UAClass.UNKNOWN

    ua_lower = user_agent.lower()

    # Bot patterns take priority (mail proxies also claim mozilla/5.0)
    for pattern in config.bot_patterns:
        if pattern in ua_lower:
            return UAClass.BOT

    for pattern in config.real_browser_patterns:
        if pattern in ua_lower:
            return UAClass.REAL

    return UAClass.UNKNOWN


# --- Dedupe scope ---


@dataclass(frozen=True)
class DedupeScope:
    """Identity of one logical engagement for duplicate suppression."""

    event_type: EventType
    subject_id: str
    newsletter_id: str
    target_url: str | None = None


def open_scope(subject_id: str, newsletter_id: str) -> DedupeScope:
    """Scope for newsletter opens: one open per (subject, newsletter)."""
    return DedupeScope(EventType.OPEN, subject_id, newsletter_id)


def click_scope(subject_id: str, newsletter_id: str, target_url: str) -> DedupeScope:
    """Scope for link clicks: distinct destinations are distinct clicks."""
    return DedupeScope(EventType.CLICK, subject_id, newsletter_id, target_url)


# --- Store protocol ---


class RecentEventLookupPort(Protocol):
    """Event store lookup used for duplicate detection."""

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


# --- Dedupe service ---


class DedupeService:
    """Duplicate detection against the persistent event store."""

    def __init__(
        self,
        store: RecentEventLookupPort,
        config: DedupeConfig | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._store = store
        self._config = config or DEFAULT_CONFIG
        self._time_port = time_port

    def _now(self) -> datetime:
        if self._time_port:
            return self._time_port.now_utc()
        return datetime.now(UTC)

    @property
    def window_seconds(self) -> int:
        return self._config.effective_window_seconds

    def is_duplicate(self, scope: DedupeScope) -> bool:
        """Return True if the same logical event was already stored in the window."""
        if not self._config.enabled:
            return False

        since = self._now() - timedelta(seconds=self.window_seconds)
        return self._store.exists_recent(
            event_type=scope.event_type.value,
            subject_id=scope.subject_id,
            newsletter_id=scope.newsletter_id,
            since=since,
            target_url=scope.target_url,
        )


def create_dedupe_service(
    store: RecentEventLookupPort,
    window_seconds: int | None = None,
    time_port: TimePort | None = None,
) -> DedupeService:
    """Factory for a dedupe service with a clamped window."""
    config = DedupeConfig(window_seconds=clamp_window_seconds(window_seconds))
    return DedupeService(store=store, config=config, time_port=time_port)
