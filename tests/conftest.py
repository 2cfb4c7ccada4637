from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from src.adapters.clock import FrozenClock
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.deps import _load_rules_cached, get_settings
from src.app_shell.context import ServiceContext
from src.rules.loader import load_rules
from src.rules.models import Rules

ROOT_DIR = Path(__file__).resolve().parent.parent
RULES_PATH = ROOT_DIR / "rules.yaml"
MIGRATIONS_DIR = str(ROOT_DIR / "migrations")

TEST_TOKEN_SECRET = "test-tracking-secret-0123456789abcdef"
TEST_ADMIN_SECRET = "test-admin-secret-0123456789abcdef"
START = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def rules() -> Rules:
    """Real rules from the project root."""
    return load_rules(RULES_PATH)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Temporary SQLite database with all migrations applied."""
    path = str(tmp_path / "tracking.db")
    SQLiteMigrator(path, MIGRATIONS_DIR).run_migrations()
    return path


@pytest.fixture
def test_ctx(db_path: str, rules: Rules, clock: FrozenClock) -> ServiceContext:
    """
    Creates a full ServiceContext backed by a temporary SQLite DB.
    """
    return ServiceContext.create(
        db_path=db_path, rules=rules, token_secret=TEST_TOKEN_SECRET, clock=clock
    )


@pytest.fixture
def app_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """
    Environment for the full application: data dir, rules and both secrets.

    Cached settings and rules are cleared on both sides of the test.
    """
    monkeypatch.setenv("LAB_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TRACKING_RULES_PATH", str(RULES_PATH))
    monkeypatch.setenv("TRACKING_TOKEN_SECRET", TEST_TOKEN_SECRET)
    monkeypatch.setenv("LAB_SECRET_KEY", TEST_ADMIN_SECRET)
    get_settings.cache_clear()
    _load_rules_cached.cache_clear()
    yield tmp_path
    get_settings.cache_clear()
    _load_rules_cached.cache_clear()
