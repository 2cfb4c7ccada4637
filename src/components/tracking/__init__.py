"""
Tracking component - Open pixel, click redirect and reader event ingress.
"""

from .component import (
    ALLOWED_EXTRA_FIELDS,
    is_safe_redirect_url,
    run_click,
    run_ingest,
    run_open,
    validate_ingest,
)
from .models import (
    BEACON_HEADERS,
    DEFAULT_CONFIG,
    GIF_MEDIA_TYPE,
    REDIRECT_HEADERS,
    SKIP_BAD_PAYLOAD,
    SKIP_DUPLICATE,
    SKIP_INVALID_TOKEN,
    SKIP_NO_TOKEN,
    SKIP_STORE_ERROR,
    TRANSPARENT_GIF,
    ClickInput,
    ClickOutput,
    IngestEventInput,
    IngestionError,
    IngestOutput,
    OpenInput,
    OpenOutput,
    TrackingConfig,
)
from .ports import EventStorePort, TimePort

__all__ = [
    # Entry points
    "run_open",
    "run_click",
    "run_ingest",
    # Validation
    "is_safe_redirect_url",
    "validate_ingest",
    "ALLOWED_EXTRA_FIELDS",
    # Beacon
    "TRANSPARENT_GIF",
    "GIF_MEDIA_TYPE",
    "BEACON_HEADERS",
    "REDIRECT_HEADERS",
    # Skip reasons
    "SKIP_NO_TOKEN",
    "SKIP_INVALID_TOKEN",
    "SKIP_BAD_PAYLOAD",
    "SKIP_DUPLICATE",
    "SKIP_STORE_ERROR",
    # Models
    "TrackingConfig",
    "DEFAULT_CONFIG",
    "OpenInput",
    "OpenOutput",
    "ClickInput",
    "ClickOutput",
    "IngestEventInput",
    "IngestOutput",
    "IngestionError",
    # Ports
    "EventStorePort",
    "TimePort",
]
