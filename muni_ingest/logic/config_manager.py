"""
Configuration Manager for the municipal ingestion service

Handles loading configuration from a JSON config file plus environment
overrides, so deployments can be configured without modifying code.

Config file locations (checked in order):
1. ./muni_ingest.json (current working directory)
2. ~/.config/muni-ingest/config.json
3. config.json next to the package (development)

Environment variables MUNI_INGEST_<KEY> (e.g. MUNI_INGEST_BATCH_SIZE)
override both the file and the defaults. A .env file is honoured when the
API starts (python-dotenv).
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_BATCH_SIZE, DEFAULT_OWNER_ID, FUZZY_MATCH_THRESHOLD

logger = logging.getLogger(__name__)

ENV_PREFIX = "MUNI_INGEST_"

# Default configuration
DEFAULT_CONFIG: Dict[str, Any] = {
    "_comment": "Municipal ingestion service configuration",
    "database_path": "data/muni_ingest.db",
    "blob_dir": "data",
    "batch_size": DEFAULT_BATCH_SIZE,
    "fuzzy_threshold": FUZZY_MATCH_THRESHOLD,
    "default_owner_id": DEFAULT_OWNER_ID,
    "log_level": "INFO",
    "log_dir": "logs",
    "log_to_file": True,
    "server_port": 8000,
    "cors_origins": ["http://localhost:3000", "http://localhost:5173"],
}


def get_config_paths() -> List[Path]:
    """Get list of possible config file locations, in priority order."""
    return [
        Path.cwd() / "muni_ingest.json",
        Path.home() / ".config" / "muni-ingest" / "config.json",
        Path(__file__).resolve().parent.parent.parent / "config.json",
    ]


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_paths():
        if path.exists():
            logger.info(f"Found config file: {path}")
            return path
    return None


def _coerce(value: str, default: Any) -> Any:
    """Convert an environment string to the type of the default value."""
    if isinstance(default, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


def apply_environment_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Override config keys from MUNI_INGEST_* environment variables."""
    for key, default in DEFAULT_CONFIG.items():
        if key.startswith("_"):
            continue
        raw = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if raw is None or raw == "":
            continue
        try:
            config[key] = _coerce(raw, default)
            logger.debug(f"Config '{key}' set from environment")
        except ValueError:
            logger.warning(f"Ignoring invalid {ENV_PREFIX}{key.upper()}={raw!r}")
    return config


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration.

    Args:
        config_path: Explicit config file; searched for when omitted

    Returns:
        Merged config (defaults < file < environment)
    """
    config = {k: v for k, v in DEFAULT_CONFIG.items() if not k.startswith("_")}

    path = Path(config_path) if config_path else find_config_file()
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                file_config = json.load(f)
            for key, value in file_config.items():
                if not key.startswith("_"):
                    config[key] = value
            logger.info(f"Loaded config from: {path}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config from {path}: {e}")

    return apply_environment_overrides(config)


# Singleton config instance
_config: Optional[Dict[str, Any]] = None


def get_config() -> Dict[str, Any]:
    """Get the current config (loads if not already loaded)."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config; the next get_config() reloads it."""
    global _config
    _config = None
