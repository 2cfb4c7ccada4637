import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite_db import SQLiteTokenRepo
from src.api.deps import get_settings
from src.app_shell.config import validate_ops_rules
from src.components.tokens import ConfigurationError, create_token_service
from src.rules.loader import load_rules

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = load_rules(settings.rules_path)
        logger.info("Rules loaded from %s", settings.rules_path)
    except Exception as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    validate_ops_rules(rules, settings.base_dir)

    try:
        create_token_service(
            repo=SQLiteTokenRepo(settings.db_path),
            secret=settings.token_secret,
            lifetime_days=rules.tracking.token_lifetime_days,
        ).ensure_configured()
    except ConfigurationError as e:
        logger.critical("%s", e)
        sys.exit(1)

    SQLiteMigrator(settings.db_path).run_migrations()

    yield
    # Shutdown cleanup if needed


app = FastAPI(
    title="Newsletter Tracking API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import admin_analytics, tracking  # noqa: E402

app.include_router(tracking.router, prefix="/track", tags=["Tracking"])
app.include_router(
    admin_analytics.router, prefix="/api/admin/analytics", tags=["Admin Analytics"]
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "tracking"}
