from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import (
    SQLiteArticleCatalog,
    SQLiteEventStore,
    SQLiteSnapshotRepo,
    SQLiteTokenRepo,
)
from src.components.analytics import AggregationEngine, create_aggregation_engine
from src.components.tokens import TokenService, create_token_service
from src.core.services.analytics_dedupe import DedupeService, create_dedupe_service
from src.rules.models import Rules


@dataclass
class ServiceContext:
    rules: Rules
    token_repo: SQLiteTokenRepo
    event_store: SQLiteEventStore
    snapshot_repo: SQLiteSnapshotRepo
    article_catalog: SQLiteArticleCatalog
    token_service: TokenService
    dedupe_service: DedupeService
    aggregation_engine: AggregationEngine
    clock: Any = None  # For testing/injection

    @classmethod
    def create(
        cls,
        db_path: str,
        rules: Rules,
        token_secret: str | None,
        clock: Any = None,
    ) -> ServiceContext:
        clock = clock or SystemClock()

        # Adapters
        token_repo = SQLiteTokenRepo(db_path)
        event_store = SQLiteEventStore(db_path)
        snapshot_repo = SQLiteSnapshotRepo(db_path)
        article_catalog = SQLiteArticleCatalog(db_path)

        # Services
        token_service = create_token_service(
            repo=token_repo,
            secret=token_secret,
            lifetime_days=rules.tracking.token_lifetime_days,
            time_port=clock,
        )
        dedupe_service = create_dedupe_service(
            store=event_store,
            window_seconds=rules.tracking.dedup_window_seconds,
            time_port=clock,
        )
        aggregation_engine = create_aggregation_engine(
            events=event_store,
            snapshots=snapshot_repo,
            catalog=article_catalog,
            view_event_types=frozenset(rules.analytics.view_event_types),
            min_time_spent_seconds=rules.analytics.min_time_spent_seconds,
        )

        return cls(
            rules=rules,
            token_repo=token_repo,
            event_store=event_store,
            snapshot_repo=snapshot_repo,
            article_catalog=article_catalog,
            token_service=token_service,
            dedupe_service=dedupe_service,
            aggregation_engine=aggregation_engine,
            clock=clock,
        )
