import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import (
    SQLiteArticleCatalog,
    SQLiteEventStore,
    SQLiteSnapshotRepo,
    SQLiteTokenRepo,
)
from src.api.auth_utils import decode_access_token, get_secret_key, is_admin
from src.app_shell.config import resolve_db_path, resolve_rules_path
from src.components.analytics import AggregationEngine, create_aggregation_engine
from src.components.tokens import SECRET_ENV_VAR, TokenService, create_token_service
from src.components.tracking import TrackingConfig
from src.core.services.analytics_dedupe import DedupeService, create_dedupe_service
from src.rules.loader import load_rules
from src.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.db_path = resolve_db_path(self.base_dir)
        self.rules_path = resolve_rules_path(self.base_dir)
        self.token_secret = os.environ.get(SECRET_ENV_VAR) or None


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def _load_rules_cached(rules_path: Path) -> Rules:
    return load_rules(rules_path)


def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return _load_rules_cached(settings.rules_path)


# --- Clock ---
def get_clock() -> Any:
    return SystemClock()


# --- Repos ---
def get_token_repo(settings: Settings = Depends(get_settings)) -> SQLiteTokenRepo:
    return SQLiteTokenRepo(settings.db_path)


def get_event_store(settings: Settings = Depends(get_settings)) -> SQLiteEventStore:
    return SQLiteEventStore(settings.db_path)


def get_snapshot_repo(settings: Settings = Depends(get_settings)) -> SQLiteSnapshotRepo:
    return SQLiteSnapshotRepo(settings.db_path)


def get_article_catalog(settings: Settings = Depends(get_settings)) -> SQLiteArticleCatalog:
    return SQLiteArticleCatalog(settings.db_path)


# --- Component Services ---
def get_token_service(
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
    repo: SQLiteTokenRepo = Depends(get_token_repo),
    clock: Any = Depends(get_clock),
) -> TokenService:
    """Get tracking token service."""
    return create_token_service(
        repo=repo,
        secret=settings.token_secret,
        lifetime_days=rules.tracking.token_lifetime_days,
        time_port=clock,
    )


def get_dedupe_service(
    rules: Rules = Depends(get_rules),
    store: SQLiteEventStore = Depends(get_event_store),
    clock: Any = Depends(get_clock),
) -> DedupeService:
    """Get duplicate suppression service."""
    return create_dedupe_service(
        store=store,
        window_seconds=rules.tracking.dedup_window_seconds,
        time_port=clock,
    )


def get_tracking_config(rules: Rules = Depends(get_rules)) -> TrackingConfig:
    return TrackingConfig(max_time_spent_seconds=rules.tracking.max_time_spent_seconds)


def get_aggregation_engine(
    rules: Rules = Depends(get_rules),
    events: SQLiteEventStore = Depends(get_event_store),
    snapshots: SQLiteSnapshotRepo = Depends(get_snapshot_repo),
    catalog: SQLiteArticleCatalog = Depends(get_article_catalog),
) -> AggregationEngine:
    """Get analytics aggregation engine."""
    return create_aggregation_engine(
        events=events,
        snapshots=snapshots,
        catalog=catalog,
        view_event_types=frozenset(rules.analytics.view_event_types),
        min_time_spent_seconds=rules.analytics.min_time_spent_seconds,
    )


# --- Admin Auth ---
bearer_scheme = HTTPBearer(auto_error=False)


def require_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> dict[str, Any]:
    """Admin bearer token (HS256 JWT with role=admin)."""
    if get_secret_key() is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is not configured",
        )

    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not is_admin(payload):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )

    return payload
