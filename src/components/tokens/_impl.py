"""
In-memory token repository for tests and local development.

Not durable: a process restart forgets every revocation.
"""

from __future__ import annotations

from src.core.entities import TrackingTokenRecord


class InMemoryTokenRepo:
    """Dict-backed revocation store."""

    def __init__(self) -> None:
        self._records: dict[str, TrackingTokenRecord] = {}

    def get_by_hash(self, token_hash: str) -> TrackingTokenRecord | None:
        return self._records.get(token_hash)

    def save(self, record: TrackingTokenRecord) -> TrackingTokenRecord:
        existing = self._records.get(record.token_hash)
        if existing is not None:
            return existing
        self._records[record.token_hash] = record
        return record

    def is_revoked(self, token_hash: str) -> bool:
        record = self._records.get(token_hash)
        return record is not None and record.revoked

    def mark_revoked(self, token_hash: str) -> bool:
        record = self._records.get(token_hash)
        if record is None:
            return False
        if not record.revoked:
            self._records[token_hash] = record.model_copy(update={"revoked": True})
        return True

    def mark_revoked_for_subject(self, subject_id: str) -> int:
        count = 0
        for token_hash, record in list(self._records.items()):
            if record.subject_id == subject_id and not record.revoked:
                self._records[token_hash] = record.model_copy(update={"revoked": True})
                count += 1
        return count
