"""
Tokens component ports.

Protocol interfaces for the revocation store and time source.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.core.entities import TrackingTokenRecord


class TokenRepoPort(Protocol):
    """
    Durable revocation store keyed by token hash.

    Must be shared by every instance serving tracking requests.
    """

    def get_by_hash(self, token_hash: str) -> TrackingTokenRecord | None:
        """Get a token record by hash."""
        ...

    def save(self, record: TrackingTokenRecord) -> TrackingTokenRecord:
        """Insert a record; an existing hash is left untouched."""
        ...

    def is_revoked(self, token_hash: str) -> bool:
        """Return True only if a record exists and is flagged revoked."""
        ...

    def mark_revoked(self, token_hash: str) -> bool:
        """Flag a record revoked. Returns True if a record matched."""
        ...

    def mark_revoked_for_subject(self, subject_id: str) -> int:
        """Flag all of a subject's records revoked. Returns newly flagged count."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
