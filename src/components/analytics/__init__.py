"""
Analytics component - Daily snapshots and dashboard aggregation.
"""

from ._aggregate import (
    NO_DURATION,
    compute_hotness,
    hotness_score,
    compute_snapshot_rows,
    fold_snapshot_rows,
    format_duration,
    round_half_up,
    rows_from_raw_events,
    utc_day_bounds,
)
from ._impl import InMemoryArticleCatalog, InMemoryEventStore, InMemorySnapshotRepo
from .component import AggregationEngine, create_aggregation_engine
from .models import (
    DEFAULT_CONFIG,
    AggregationConfig,
    AggregationError,
    ArticleHotness,
    ArticleStats,
    NewsletterMetrics,
    SnapshotOutput,
    TrendPoint,
)
from .ports import ArticleCatalogPort, EventReaderPort, SnapshotRepoPort

__all__ = [
    # Engine
    "AggregationEngine",
    "create_aggregation_engine",
    # Pure functions
    "compute_snapshot_rows",
    "compute_hotness",
    "hotness_score",
    "rows_from_raw_events",
    "fold_snapshot_rows",
    "format_duration",
    "round_half_up",
    "utc_day_bounds",
    "NO_DURATION",
    # Models
    "AggregationConfig",
    "DEFAULT_CONFIG",
    "AggregationError",
    "ArticleStats",
    "ArticleHotness",
    "NewsletterMetrics",
    "SnapshotOutput",
    "TrendPoint",
    # Ports
    "EventReaderPort",
    "SnapshotRepoPort",
    "ArticleCatalogPort",
    # Dev/test adapters
    "InMemoryEventStore",
    "InMemorySnapshotRepo",
    "InMemoryArticleCatalog",
]
