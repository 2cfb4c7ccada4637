"""
SQLite Database Adapter.

Implements the tracking and analytics port interfaces using SQLite.
Designed to be Postgres-compatible (uses standard SQL patterns).

Datetimes are stored as UTC ISO-8601 strings with a fixed format so that
string comparison matches time order.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

from src.core.entities import (
    AnalyticsEvent,
    AnalyticsSnapshot,
    ArticleSummary,
    TrackingTokenRecord,
)

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string (naive values are UTC)."""
    if not s:
        return None
    dt = datetime.fromisoformat(s)
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def format_dt(dt: datetime) -> str:
    """Serialize a datetime as fixed-width UTC ISO-8601."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Tracking token revocation store
# -----------------------------------------------------------------------------


class SQLiteTokenRepo(SQLiteRepoBase):
    """SQLite implementation of TokenRepoPort."""

    def get_by_hash(self, token_hash: str) -> TrackingTokenRecord | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM tracking_tokens WHERE token_hash = ?", (token_hash,)
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def save(self, record: TrackingTokenRecord) -> TrackingTokenRecord:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT OR IGNORE INTO tracking_tokens (
                    token_hash, subject_id, issued_payload, expires_at, revoked, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.token_hash,
                    record.subject_id,
                    json.dumps(record.issued_payload),
                    format_dt(record.expires_at),
                    int(record.revoked),
                    format_dt(record.created_at),
                ),
            )
            if self._should_close():
                conn.commit()
            row = conn.execute(
                "SELECT * FROM tracking_tokens WHERE token_hash = ?", (record.token_hash,)
            ).fetchone()
            return self._map_row(row) if row else record
        finally:
            if self._should_close():
                conn.close()

    def is_revoked(self, token_hash: str) -> bool:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT revoked FROM tracking_tokens WHERE token_hash = ?", (token_hash,)
            ).fetchone()
            return bool(row and row["revoked"])
        finally:
            if self._should_close():
                conn.close()

    def mark_revoked(self, token_hash: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "UPDATE tracking_tokens SET revoked = 1 WHERE token_hash = ?", (token_hash,)
            )
            if self._should_close():
                conn.commit()
            return cursor.rowcount > 0
        finally:
            if self._should_close():
                conn.close()

    def mark_revoked_for_subject(self, subject_id: str) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "UPDATE tracking_tokens SET revoked = 1 WHERE subject_id = ? AND revoked = 0",
                (subject_id,),
            )
            if self._should_close():
                conn.commit()
            return cursor.rowcount
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> TrackingTokenRecord:
        return TrackingTokenRecord(
            token_hash=row["token_hash"],
            subject_id=row["subject_id"],
            issued_payload=json.loads(row["issued_payload"] or "{}"),
            expires_at=parse_dt(row["expires_at"]),  # type: ignore[arg-type]
            revoked=bool(row["revoked"]),
            created_at=parse_dt(row["created_at"]),  # type: ignore[arg-type]
        )


# -----------------------------------------------------------------------------
# Raw event store
# -----------------------------------------------------------------------------


class SQLiteEventStore(SQLiteRepoBase):
    """SQLite implementation of the event store (ingress and reader ports)."""

    def append(self, event: AnalyticsEvent) -> AnalyticsEvent:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO analytics_events (
                    id, event_type, subject_id, session_id, newsletter_id,
                    article_id, occurred_at, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(event.id),
                    event.event_type.value,
                    event.subject_id,
                    event.session_id,
                    event.newsletter_id,
                    event.article_id,
                    format_dt(event.occurred_at),
                    json.dumps(event.metadata),
                ),
            )
            if self._should_close():
                conn.commit()
            return event
        finally:
            if self._should_close():
                conn.close()

    def exists_recent(
        self,
        event_type: str,
        subject_id: str,
        newsletter_id: str,
        since: datetime,
        target_url: str | None = None,
    ) -> bool:
        query = """
            SELECT 1 FROM analytics_events
            WHERE event_type = ? AND subject_id = ? AND newsletter_id = ?
              AND occurred_at > ?
        """
        params: list[Any] = [event_type, subject_id, newsletter_id, format_dt(since)]
        if target_url is not None:
            query += " AND json_extract(metadata, '$.target_url') = ?"
            params.append(target_url)
        query += " LIMIT 1"

        conn = self._get_conn()
        try:
            return conn.execute(query, params).fetchone() is not None
        finally:
            if self._should_close():
                conn.close()

    def list_between(self, start: datetime, end: datetime) -> list[AnalyticsEvent]:
        return self._select(
            "occurred_at >= ? AND occurred_at < ?", [format_dt(start), format_dt(end)]
        )

    def list_for_articles(self, article_ids: Sequence[str]) -> list[AnalyticsEvent]:
        if not article_ids:
            return []
        return self._select(
            f"article_id IN ({_placeholders(len(article_ids))})", list(article_ids)
        )

    def list_for_newsletter(self, newsletter_id: str) -> list[AnalyticsEvent]:
        return self._select("newsletter_id = ?", [newsletter_id])

    def _select(self, where: str, params: list[Any]) -> list[AnalyticsEvent]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"SELECT * FROM analytics_events WHERE {where} ORDER BY occurred_at, id",
                params,
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> AnalyticsEvent:
        return AnalyticsEvent(
            id=UUID(row["id"]),
            event_type=row["event_type"],
            subject_id=row["subject_id"],
            session_id=row["session_id"],
            newsletter_id=row["newsletter_id"],
            article_id=row["article_id"],
            occurred_at=parse_dt(row["occurred_at"]),  # type: ignore[arg-type]
            metadata=json.loads(row["metadata"] or "{}"),
        )


# -----------------------------------------------------------------------------
# Snapshot repository
# -----------------------------------------------------------------------------


class SQLiteSnapshotRepo(SQLiteRepoBase):
    """SQLite implementation of SnapshotRepoPort."""

    def replace_for_date(self, snapshot_date: date, rows: Sequence[AnalyticsSnapshot]) -> int:
        if any(r.snapshot_date != snapshot_date for r in rows):
            raise ValueError("All rows must belong to the snapshot date being replaced")

        conn = self._get_conn()
        try:
            conn.execute(
                "DELETE FROM analytics_snapshots WHERE snapshot_date = ?",
                (snapshot_date.isoformat(),),
            )
            conn.executemany(
                """
                INSERT INTO analytics_snapshots (
                    snapshot_date, article_id, newsletter_id, metric_name, metric_value
                ) VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        r.snapshot_date.isoformat(),
                        r.article_id,
                        r.newsletter_id,
                        r.metric_name.value,
                        r.metric_value,
                    )
                    for r in rows
                ],
            )
            if self._should_close():
                conn.commit()
            return len(rows)
        except Exception:
            if self._should_close():
                conn.rollback()
            raise
        finally:
            if self._should_close():
                conn.close()

    def list_for_articles(self, article_ids: Sequence[str]) -> list[AnalyticsSnapshot]:
        if not article_ids:
            return []
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"""
                SELECT * FROM analytics_snapshots
                WHERE article_id IN ({_placeholders(len(article_ids))})
                ORDER BY snapshot_date, article_id, metric_name
                """,
                list(article_ids),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def list_for_date(self, snapshot_date: date) -> list[AnalyticsSnapshot]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM analytics_snapshots WHERE snapshot_date = ?
                ORDER BY article_id, metric_name
                """,
                (snapshot_date.isoformat(),),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> AnalyticsSnapshot:
        return AnalyticsSnapshot(
            snapshot_date=date.fromisoformat(row["snapshot_date"]),
            article_id=row["article_id"],
            newsletter_id=row["newsletter_id"],
            metric_name=row["metric_name"],
            metric_value=row["metric_value"],
        )


# -----------------------------------------------------------------------------
# Article catalog (read-only for analytics)
# -----------------------------------------------------------------------------


class SQLiteArticleCatalog(SQLiteRepoBase):
    """SQLite implementation of ArticleCatalogPort."""

    def list_for_newsletter(self, newsletter_id: str) -> list[ArticleSummary]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM articles WHERE newsletter_id = ?
                ORDER BY display_order, id
                """,
                (newsletter_id,),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def save(self, article: ArticleSummary) -> ArticleSummary:
        """Upsert an article row (seeding and tests; the CMS owns this table)."""
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO articles (id, newsletter_id, title, published_at, display_order)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    newsletter_id = excluded.newsletter_id,
                    title = excluded.title,
                    published_at = excluded.published_at,
                    display_order = excluded.display_order
                """,
                (
                    article.id,
                    article.newsletter_id,
                    article.title,
                    format_dt(article.published_at) if article.published_at else None,
                    article.display_order,
                ),
            )
            if self._should_close():
                conn.commit()
            return article
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> ArticleSummary:
        return ArticleSummary(
            id=row["id"],
            newsletter_id=row["newsletter_id"],
            title=row["title"],
            published_at=parse_dt(row["published_at"]),
            display_order=row["display_order"],
        )
