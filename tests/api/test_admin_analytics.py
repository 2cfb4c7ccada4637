"""
Tests for the Admin Analytics API.

- Admin bearer token required on every route
- Snapshot backfill, per-article stats, newsletter metrics, hotness and trend
- Tracking token issue and revocation
"""

from __future__ import annotations

import base64
import json
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.adapters.clock import FrozenClock
from src.adapters.sqlite_db import SQLiteArticleCatalog, SQLiteEventStore
from src.api.auth_utils import ADMIN_ROLE, create_access_token
from src.api.deps import get_clock
from src.api.main import app
from src.core.entities import AnalyticsEvent, ArticleSummary, EventType

PREFIX = "/api/admin/analytics"
DAY_ONE = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)
DAY_TWO = datetime(2025, 3, 2, 9, 0, tzinfo=UTC)


def _b64url(data: dict[str, object]) -> str:
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


@pytest.fixture
def client(app_env: Path, clock: FrozenClock) -> Iterator[TestClient]:
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_file(app_env: Path) -> str:
    return str(app_env / "tracking.db")


@pytest.fixture
def admin_headers(app_env: Path) -> dict[str, str]:
    token = create_access_token({"sub": "ops", "role": ADMIN_ROLE})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seeded(client: TestClient, db_file: str) -> None:
    """Two articles with two days of engagement."""
    catalog = SQLiteArticleCatalog(db_file)
    catalog.save(ArticleSummary(id="art-1", newsletter_id="nl-1", title="Lead", display_order=1))
    catalog.save(ArticleSummary(id="art-2", newsletter_id="nl-1", title="Second", display_order=2))

    store = SQLiteEventStore(db_file)

    def add(event_type: EventType, when: datetime, **kwargs: object) -> None:
        store.append(
            AnalyticsEvent(event_type=event_type, newsletter_id="nl-1", occurred_at=when, **kwargs)
        )

    for subject in ("sub-1", "sub-2", "sub-3"):
        add(EventType.OPEN, DAY_ONE, subject_id=subject)
    add(EventType.CLICK, DAY_ONE, subject_id="sub-1", article_id="art-1")
    add(EventType.PAGE_VIEW, DAY_ONE, article_id="art-1")
    add(EventType.PAGE_VIEW, DAY_ONE, article_id="art-1")
    add(EventType.SESSION_END, DAY_ONE, article_id="art-1", metadata={"time_spent_seconds": 60})
    add(EventType.PAGE_VIEW, DAY_TWO, article_id="art-1")
    add(EventType.SESSION_END, DAY_TWO, article_id="art-1", metadata={"time_spent_seconds": 125})


# --- Auth ---


class TestAdminAuth:
    def test_missing_token_is_401(self, client: TestClient) -> None:
        response = client.get(f"{PREFIX}/newsletters/nl-1/articles")

        assert response.status_code == 401

    def test_invalid_token_is_401(self, client: TestClient) -> None:
        response = client.get(
            f"{PREFIX}/newsletters/nl-1/articles",
            headers={"Authorization": "Bearer nonsense"},
        )

        assert response.status_code == 401

    def test_non_admin_role_is_403(self, client: TestClient) -> None:
        token = create_access_token({"sub": "reader", "role": "viewer"})

        response = client.get(
            f"{PREFIX}/newsletters/nl-1/articles",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 403

    def test_unconfigured_admin_key_is_503(
        self,
        client: TestClient,
        admin_headers: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("LAB_SECRET_KEY")

        response = client.get(f"{PREFIX}/newsletters/nl-1/articles", headers=admin_headers)

        assert response.status_code == 503


# --- Dashboard reads ---


class TestArticleStats:
    def test_raw_event_fallback(
        self, client: TestClient, admin_headers: dict[str, str], seeded: None
    ) -> None:
        response = client.get(f"{PREFIX}/newsletters/nl-1/articles", headers=admin_headers)

        assert response.status_code == 200
        items = response.json()["items"]
        assert [i["article_id"] for i in items] == ["art-1", "art-2"]
        lead = items[0]
        assert lead["views"] == 3
        assert lead["clicks"] == 1
        # mean of daily averages (60, 125) = 92.5 -> 93
        assert lead["avg_time_spent"] == 93
        assert lead["avg_time_spent_formatted"] == "1m 33s"
        assert items[1]["views"] == 0
        assert items[1]["avg_time_spent_formatted"] == "-"

    def test_snapshot_path_matches_fallback(
        self, client: TestClient, admin_headers: dict[str, str], seeded: None
    ) -> None:
        before = client.get(f"{PREFIX}/newsletters/nl-1/articles", headers=admin_headers).json()

        for day in ("2025-03-01", "2025-03-02"):
            response = client.post(f"{PREFIX}/snapshots/{day}", headers=admin_headers)
            assert response.status_code == 200

        after = client.get(f"{PREFIX}/newsletters/nl-1/articles", headers=admin_headers).json()
        assert after == before

    def test_unknown_newsletter_is_empty(
        self, client: TestClient, admin_headers: dict[str, str]
    ) -> None:
        response = client.get(f"{PREFIX}/newsletters/nl-404/articles", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"newsletter_id": "nl-404", "items": []}


class TestSnapshots:
    def test_generate_snapshot(
        self, client: TestClient, admin_headers: dict[str, str], seeded: None
    ) -> None:
        response = client.post(f"{PREFIX}/snapshots/2025-03-01", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["snapshot_date"] == "2025-03-01"
        assert body["events_read"] == 7
        # art-1: views, clicks, avg_time_spent
        assert body["rows_written"] == 3
        assert body["articles"] == 1

    def test_rerun_is_idempotent(
        self, client: TestClient, admin_headers: dict[str, str], seeded: None
    ) -> None:
        first = client.post(f"{PREFIX}/snapshots/2025-03-01", headers=admin_headers).json()
        second = client.post(f"{PREFIX}/snapshots/2025-03-01", headers=admin_headers).json()

        assert first == second

    def test_invalid_date_is_400(
        self, client: TestClient, admin_headers: dict[str, str]
    ) -> None:
        response = client.post(f"{PREFIX}/snapshots/yesterday", headers=admin_headers)

        assert response.status_code == 400


class TestNewsletterMetrics:
    def test_rates(
        self, client: TestClient, admin_headers: dict[str, str], seeded: None
    ) -> None:
        response = client.get(
            f"{PREFIX}/newsletters/nl-1/metrics",
            params={"recipients": 8},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["unique_opens"] == 3
        assert body["unique_clicks"] == 1
        assert body["open_rate"] == 37.5
        assert body["click_to_open_rate"] == 33.3
        assert body["total_views"] == 3

    def test_zero_recipients(
        self, client: TestClient, admin_headers: dict[str, str], seeded: None
    ) -> None:
        response = client.get(f"{PREFIX}/newsletters/nl-1/metrics", headers=admin_headers)

        assert response.json()["open_rate"] == 0.0

    def test_hotness(
        self, client: TestClient, admin_headers: dict[str, str], db_file: str
    ) -> None:
        published = datetime(2025, 3, 1, 8, 0, tzinfo=UTC)
        SQLiteArticleCatalog(db_file).save(
            ArticleSummary(id="art-1", newsletter_id="nl-1", title="Lead", published_at=published)
        )
        store = SQLiteEventStore(db_file)
        for subject, hours in (("sub-1", 1), ("sub-2", 3)):
            store.append(
                AnalyticsEvent(
                    event_type=EventType.PAGE_VIEW,
                    subject_id=subject,
                    newsletter_id="nl-1",
                    article_id="art-1",
                    occurred_at=published + timedelta(hours=hours),
                )
            )

        response = client.get(f"{PREFIX}/newsletters/nl-1/hotness", headers=admin_headers)

        assert response.status_code == 200
        items = response.json()["items"]
        assert len(items) == 1
        assert items[0]["article_id"] == "art-1"
        assert items[0]["avg_read_latency_minutes"] == 120
        assert items[0]["hotness_score"] == 96
        assert items[0]["total_readers"] == 2

    def test_trend(self, client: TestClient, admin_headers: dict[str, str], seeded: None) -> None:
        response = client.get(
            f"{PREFIX}/trend",
            params=[("newsletter", "nl-0"), ("newsletter", "nl-1"), ("recipients", "8")],
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["items"] == [
            {"newsletter_id": "nl-0", "open_rate": 0.0, "click_rate": 0.0},
            {"newsletter_id": "nl-1", "open_rate": 37.5, "click_rate": 33.3},
        ]

    def test_trend_requires_newsletter(
        self, client: TestClient, admin_headers: dict[str, str]
    ) -> None:
        response = client.get(f"{PREFIX}/trend", headers=admin_headers)

        assert response.status_code == 422

    def test_negative_recipients_rejected(
        self, client: TestClient, admin_headers: dict[str, str]
    ) -> None:
        response = client.get(
            f"{PREFIX}/newsletters/nl-1/metrics",
            params={"recipients": -1},
            headers=admin_headers,
        )

        assert response.status_code == 422


# --- Token administration ---


class TestTokenAdmin:
    def test_issue_and_use_token(
        self, client: TestClient, admin_headers: dict[str, str], db_file: str
    ) -> None:
        response = client.post(
            f"{PREFIX}/tokens",
            json={"subject_id": "sub-1", "newsletter_id": "nl-1", "article_id": "art-1"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert len(body["token_hash"]) == 64
        assert body["expires_at"] > 0

        client.get("/track/open", params={"t": body["token"]})
        opens = SQLiteEventStore(db_file).list_for_newsletter("nl-1")
        assert [e.subject_id for e in opens] == ["sub-1"]

    def test_revoke_token(
        self, client: TestClient, admin_headers: dict[str, str], db_file: str
    ) -> None:
        token = client.post(
            f"{PREFIX}/tokens",
            json={"subject_id": "sub-1", "newsletter_id": "nl-1"},
            headers=admin_headers,
        ).json()["token"]

        for _ in range(2):
            response = client.post(
                f"{PREFIX}/tokens/revoke", json={"token": token}, headers=admin_headers
            )
            assert response.json() == {"revoked": True}

        client.get("/track/open", params={"t": token})
        assert SQLiteEventStore(db_file).list_for_newsletter("nl-1") == []

    def test_revoke_garbage_token(
        self, client: TestClient, admin_headers: dict[str, str]
    ) -> None:
        response = client.post(
            f"{PREFIX}/tokens/revoke", json={"token": "garbage"}, headers=admin_headers
        )

        assert response.json() == {"revoked": False}

    def test_revoke_token_with_out_of_range_expiry(
        self, client: TestClient, admin_headers: dict[str, str]
    ) -> None:
        header = _b64url({"alg": "HS256", "typ": "JWT"})
        payload = _b64url({"sub": "sub-1", "nwl": "nl-1", "exp": 10**20})

        response = client.post(
            f"{PREFIX}/tokens/revoke",
            json={"token": f"{header}.{payload}.c2ln"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"revoked": True}

    def test_revoke_subject(
        self, client: TestClient, admin_headers: dict[str, str]
    ) -> None:
        for newsletter in ("nl-1", "nl-2"):
            client.post(
                f"{PREFIX}/tokens",
                json={"subject_id": "sub-1", "newsletter_id": newsletter},
                headers=admin_headers,
            )

        response = client.post(f"{PREFIX}/subjects/sub-1/revoke", headers=admin_headers)

        assert response.json() == {"subject_id": "sub-1", "revoked_count": 2}
