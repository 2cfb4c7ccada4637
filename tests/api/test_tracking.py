"""
Tests for the public tracking routes.

- /track/open always serves the pixel, records at most one open per window
- /track/click redirects to safe destinations, logs valid clicks
- /track/event accepts reader events and rejects PII
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.adapters.clock import FrozenClock
from src.adapters.sqlite_db import SQLiteEventStore, SQLiteTokenRepo
from src.api.deps import get_clock
from src.api.main import app
from src.components.tokens import TokenService, create_token_service
from src.components.tracking import TRANSPARENT_GIF
from src.core.entities import AnalyticsEvent

BROWSER_UA = "Mozilla/5.0 (Macintosh) AppleWebKit/605.1.15 Safari/605.1.15"


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
def tokens(client: TestClient, db_file: str, clock: FrozenClock) -> TokenService:
    return create_token_service(
        repo=SQLiteTokenRepo(db_file),
        secret=os.environ["TRACKING_TOKEN_SECRET"],
        time_port=clock,
    )


def stored_events(db_file: str, newsletter_id: str = "nl-1") -> list[AnalyticsEvent]:
    return SQLiteEventStore(db_file).list_for_newsletter(newsletter_id)


# --- Open beacon ---


class TestOpen:
    def test_valid_token_records_open(
        self, client: TestClient, tokens: TokenService, db_file: str
    ) -> None:
        token = tokens.generate("sub-1", {"nwl": "nl-1"})

        response = client.get("/track/open", params={"t": token})

        assert response.status_code == 200
        assert response.content == TRANSPARENT_GIF
        assert response.headers["content-type"] == "image/gif"
        assert "no-store" in response.headers["cache-control"]

        events = stored_events(db_file)
        assert len(events) == 1
        assert events[0].event_type.value == "open"
        assert events[0].subject_id == "sub-1"

    @pytest.mark.parametrize("params", [{}, {"t": ""}, {"t": "garbage"}, {"t": "a.b.c"}])
    def test_bad_or_missing_token_still_serves_pixel(
        self, client: TestClient, db_file: str, params: dict[str, str]
    ) -> None:
        response = client.get("/track/open", params=params)

        assert response.status_code == 200
        assert response.content == TRANSPARENT_GIF
        assert stored_events(db_file) == []

    def test_revoked_token_not_recorded(
        self, client: TestClient, tokens: TokenService, db_file: str
    ) -> None:
        token = tokens.generate("sub-1", {"nwl": "nl-1"})
        tokens.store(token, "sub-1")
        tokens.revoke(token)

        response = client.get("/track/open", params={"t": token})

        assert response.status_code == 200
        assert stored_events(db_file) == []

    def test_repeat_open_within_window_deduplicated(
        self, client: TestClient, tokens: TokenService, db_file: str, clock: FrozenClock
    ) -> None:
        token = tokens.generate("sub-1", {"nwl": "nl-1"})

        client.get("/track/open", params={"t": token})
        clock.advance(seconds=3)
        client.get("/track/open", params={"t": token})
        assert len(stored_events(db_file)) == 1

        clock.advance(seconds=30)
        client.get("/track/open", params={"t": token})
        assert len(stored_events(db_file)) == 2


# --- Click redirect ---


class TestClick:
    def test_valid_click_redirects_and_records(
        self, client: TestClient, tokens: TokenService, db_file: str
    ) -> None:
        token = tokens.generate("sub-1", {"nwl": "nl-1", "art": "art-1"})
        url = "https://example.com/articles/1?ref=mail"

        response = client.get(
            "/track/click",
            params={"t": token, "url": url},
            headers={"User-Agent": BROWSER_UA},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == url
        assert response.headers["cache-control"] == "no-store"

        events = stored_events(db_file)
        assert len(events) == 1
        assert events[0].event_type.value == "click"
        assert events[0].article_id == "art-1"
        assert events[0].metadata["target_url"] == url
        assert events[0].metadata["ua_class"] == "real"

    def test_invalid_token_still_redirects(self, client: TestClient, db_file: str) -> None:
        response = client.get(
            "/track/click",
            params={"t": "not-a-token", "url": "https://example.com/"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/"
        assert stored_events(db_file) == []

    @pytest.mark.parametrize(
        "url",
        [
            "javascript:alert(1)",
            "data:text/html,hi",
            "//evil.example/",
            "ftp://example.com/file",
            "https://",
        ],
    )
    def test_unsafe_destination_rejected(
        self, client: TestClient, tokens: TokenService, db_file: str, url: str
    ) -> None:
        token = tokens.generate("sub-1", {"nwl": "nl-1"})

        response = client.get(
            "/track/click", params={"t": token, "url": url}, follow_redirects=False
        )

        assert response.status_code == 400
        assert stored_events(db_file) == []

    def test_missing_destination_rejected(self, client: TestClient) -> None:
        response = client.get("/track/click", follow_redirects=False)

        assert response.status_code == 400

    def test_distinct_destinations_not_deduplicated(
        self, client: TestClient, tokens: TokenService, db_file: str
    ) -> None:
        token = tokens.generate("sub-1", {"nwl": "nl-1"})

        for url in ("https://a.example/", "https://b.example/", "https://a.example/"):
            client.get("/track/click", params={"t": token, "url": url}, follow_redirects=False)

        urls = sorted(e.metadata["target_url"] for e in stored_events(db_file))
        assert urls == ["https://a.example/", "https://b.example/"]


# --- Reader events ---


class TestEvent:
    def test_page_view_with_token(
        self, client: TestClient, tokens: TokenService, db_file: str
    ) -> None:
        token = tokens.generate("sub-1", {"nwl": "nl-1"})

        response = client.post(
            "/track/event",
            json={
                "event_type": "page_view",
                "t": token,
                "article_id": "art-1",
                "session_id": "sess-1",
                "path": "/articles/1",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "recorded": True}

        events = stored_events(db_file)
        assert len(events) == 1
        assert events[0].subject_id == "sub-1"
        assert events[0].session_id == "sess-1"
        assert events[0].metadata["path"] == "/articles/1"

    def test_anonymous_session_end(self, client: TestClient, db_file: str) -> None:
        response = client.post(
            "/track/event",
            json={
                "event_type": "session_end",
                "newsletter_id": "nl-1",
                "article_id": "art-1",
                "time_spent_seconds": 95,
            },
        )

        assert response.status_code == 200
        events = stored_events(db_file)
        assert events[0].subject_id is None
        assert events[0].metadata["time_spent_seconds"] == 95

    def test_nan_time_spent_rejected(self, client: TestClient, db_file: str) -> None:
        body = (
            '{"event_type": "session_end", "newsletter_id": "nl-1", '
            '"article_id": "art-1", "time_spent_seconds": NaN}'
        )
        response = client.post(
            "/track/event", content=body, headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        errors = response.json()["detail"]["errors"]
        assert errors[0]["code"] == "time_spent_out_of_range"
        assert stored_events(db_file) == []

    def test_pii_field_rejected(self, client: TestClient, db_file: str) -> None:
        response = client.post(
            "/track/event",
            json={
                "event_type": "page_view",
                "newsletter_id": "nl-1",
                "article_id": "art-1",
                "email": "reader@example.com",
            },
        )

        assert response.status_code == 400
        errors = response.json()["detail"]["errors"]
        assert {"code": "forbidden_field", "field": "email"}.items() <= errors[0].items()
        assert stored_events(db_file) == []

    def test_open_event_type_not_accepted(self, client: TestClient) -> None:
        response = client.post(
            "/track/event",
            json={"event_type": "open", "newsletter_id": "nl-1", "article_id": "art-1"},
        )

        assert response.status_code == 400
        codes = [e["code"] for e in response.json()["detail"]["errors"]]
        assert "event_type_not_allowed" in codes

    def test_missing_event_type_is_validation_error(self, client: TestClient) -> None:
        response = client.post("/track/event", json={"article_id": "art-1"})

        assert response.status_code == 422
