"""Logging configuration and setup."""

import json
import logging
import sys
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from bikeshop_sync.config.constants import STORE_TIMEZONE
from bikeshop_sync.config.settings import settings

STORE_TZ = ZoneInfo(STORE_TIMEZONE)

# Identifiers that services pass through `extra=` and that end up as JSON keys
CONTEXT_FIELDS = ("order_id", "bling_order_id", "product_id")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, timestamped in store time."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, STORE_TZ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            error_type, error, tb = record.exc_info
            log_data["exception"] = {
                "type": error_type.__name__,
                "message": str(error),
                "traceback": traceback.format_exception(error_type, error, tb),
            }

        log_data.update(
            {field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)}
        )

        return json.dumps(log_data, default=str, ensure_ascii=False)


def log_file_path(log_dir: str) -> Path:
    """Per-run file: bikeshop_<store date>_<run id>.log"""
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    run_date = datetime.now(STORE_TZ).strftime("%Y-%m-%d")
    return directory / f"bikeshop_{run_date}_{uuid.uuid4().hex[:8]}.log"


def configure_logging(level: str, log_dir: Optional[str]) -> None:
    """
    Attach JSON handlers to the root logger, once.

    Console output honours `level`; the file, when `log_dir` is set, keeps
    everything down to DEBUG.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(console_handler)

    if log_dir:
        file_handler = logging.FileHandler(log_file_path(log_dir), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)


def setup_logger(name: str) -> logging.Logger:
    """Get logger for a module."""
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger


configure_logging(settings.log_level, settings.log_dir)
