"""
Municipal Ingestion - Logging

Console plus rotating-file logging for the service and the CLI, a CSV audit
trail with one line per finished import, and a timing decorator for the
load entry points.
"""

import csv
import logging
import sys
import time
from datetime import datetime
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

# Where the rotating log and the audit CSV go (set by setup_logging)
LOG_DIR = Path("logs")

LOG_FILE_NAME = "muni_ingest.log"
AUDIT_FILE_NAME = "ingestion_audit.csv"

AUDIT_COLUMNS = [
    "timestamp", "event", "file_name", "record_type", "mode", "status",
    "rows", "inserted", "errors", "skipped", "log_id", "user_id",
]

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_dir: Union[str, Path] = "logs",
    max_bytes: int = 5_000_000,
    backup_count: int = 3
) -> None:
    """
    Configure the root logger for a server or CLI process.

    Args:
        level: Level number or name ("DEBUG", "INFO", ...)
        log_to_file: Also write a rotating file under log_dir
        log_dir: Directory for the log file and the audit trail
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files kept
    """
    global LOG_DIR
    LOG_DIR = Path(log_dir)
    level = _resolve_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    root_logger.addHandler(console)

    if log_to_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_DIR / LOG_FILE_NAME, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(file_handler)

    # multipart parsing is chatty at DEBUG
    logging.getLogger("multipart").setLevel(max(level, logging.INFO))


def configure_from(config: Dict[str, Any], verbose: bool = False) -> None:
    """setup_logging driven by the loaded config; verbose forces DEBUG."""
    setup_logging(
        level=logging.DEBUG if verbose else config.get("log_level", "INFO"),
        log_to_file=bool(config.get("log_to_file", True)),
        log_dir=config.get("log_dir", "logs"),
    )


# ==============================================================================
# AUDIT TRAIL
# ==============================================================================

def log_import_event(event: str, file_name: str, values: Dict[str, Any]) -> None:
    """
    Append one line to the import audit trail.

    Args:
        event: "IMPORT_COMPLETED" or "IMPORT_COMPLETED_WITH_ERRORS"
        file_name: Original name of the uploaded file
        values: Remaining AUDIT_COLUMNS; missing ones are left blank
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    audit_file = LOG_DIR / AUDIT_FILE_NAME
    is_new = not audit_file.exists()

    row = dict(values, timestamp=datetime.now().isoformat(timespec="seconds"), event=event, file_name=file_name)
    with open(audit_file, "a", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=AUDIT_COLUMNS, extrasaction="ignore")
        if is_new:
            writer.writeheader()
        writer.writerow(row)


# ==============================================================================
# TIMING AND ERRORS
# ==============================================================================

def timed(func: Callable) -> Callable:
    """Log how long each call of func took, at INFO on the function's module logger."""
    @wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            logging.getLogger(func.__module__).info(
                f"{func.__name__} took {time.perf_counter() - start:.2f}s"
            )
    return wrapper


def log_error(error: Exception, action: str, logger_name: Optional[str] = None) -> str:
    """
    Log an unexpected failure with its traceback.

    Returns a message safe to show to the uploader, without internals.
    """
    logging.getLogger(logger_name or "muni_ingest.error").error(
        f"{action} failed: {type(error).__name__}: {error}", exc_info=True
    )
    return f"Something went wrong while {action}. Please try again."
