from __future__ import annotations

import sqlite3
from pathlib import Path

from fastapi.testclient import TestClient

from src.api.main import app


def test_health(app_env: Path) -> None:
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "tracking"}


def test_startup_applies_migrations(app_env: Path) -> None:
    with TestClient(app):
        pass

    conn = sqlite3.connect(app_env / "tracking.db")
    try:
        names = {
            r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
    finally:
        conn.close()
    assert {"tracking_tokens", "analytics_events", "analytics_snapshots"} <= names


def test_routes_mounted() -> None:
    paths = {route.path for route in app.routes}

    assert {"/track/open", "/track/click", "/track/event"} <= paths
    assert "/api/admin/analytics/snapshots/{snapshot_date}" in paths
