import logging
import os
import sys
from pathlib import Path

from src.rules.models import Rules

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "tracking.db"


def resolve_db_path(base_dir: Path | None = None) -> str:
    """Database path from LAB_DATA_DIR, else the working directory."""
    data_dir = os.environ.get("LAB_DATA_DIR")
    if data_dir:
        return str(Path(data_dir) / DEFAULT_DB_NAME)
    return str((base_dir or Path.cwd()) / DEFAULT_DB_NAME)


def resolve_rules_path(base_dir: Path | None = None) -> Path:
    """Rules path from TRACKING_RULES_PATH, else rules.yaml in base_dir."""
    override = os.environ.get("TRACKING_RULES_PATH")
    if override:
        return Path(override)
    return (base_dir or Path.cwd()) / "rules.yaml"


def validate_ops_rules(rules: Rules, base_dir: Path) -> None:
    """
    Validate operational requirements before startup.
    Exits the process on a missing required environment variable.
    """
    ops = rules.ops

    # 1. Check Data Dir
    if ops.data_dir_required:
        data_dir = os.environ.get("LAB_DATA_DIR")
        if not data_dir or not Path(data_dir).is_dir():
            logger.critical("LAB_DATA_DIR must point to an existing directory")
            sys.exit(1)

    # 2. Check Required Env (empty values count as missing)
    missing = [env_var for env_var in ops.required_env if not os.environ.get(env_var)]

    if missing:
        logger.critical("Missing required environment variables: %s", ", ".join(missing))
        sys.exit(1)

    logger.info("Configuration validated (base dir %s)", base_dir)
