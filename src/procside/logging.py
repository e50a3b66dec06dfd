"""Structured JSON logging for procside.

Writes JSONL to <artifact_dir>/procside.log with rotation (5MB; 3 backups,
5 in production).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

_LOG_FILENAME = "procside.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3
_PRODUCTION_BACKUP_COUNT = 5

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# Optional ``extra=`` attributes copied into the JSON entry, as record attr -> JSON key.
_EXTRA_FIELDS = (
    ("tool", "tool"),
    ("args_data", "args"),
    ("duration_ms", "duration_ms"),
    ("error", "error"),
    ("action", "action"),
    ("process_id", "process_id"),
)


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        for attr, key in _EXTRA_FIELDS:
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def setup_logging(artifact_dir: Path, level: str = "info", environment: str = "development") -> logging.Logger:
    """Set up structured JSON logging to <artifact_dir>/procside.log.

    Returns the package logger. Calling again for the same file is a no-op
    apart from the level; a different file replaces the previous handler.
    """
    logger = logging.getLogger("procside")
    log_path = artifact_dir / _LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        logger.setLevel(_LEVELS.get(level, logging.INFO))
        for h in logger.handlers[:]:
            if not isinstance(h, RotatingFileHandler):
                continue
            if h.baseFilename == target_filename:
                return logger
            # Different path: remove stale handler to avoid leaks / duplicates.
            logger.removeHandler(h)
            h.close()

        artifact_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=_MAX_BYTES,
            backupCount=_PRODUCTION_BACKUP_COUNT if environment == "production" else _BACKUP_COUNT,
        )
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
    return logger
