"""Structured JSON logging for cardweave.

Engine operations log through the ``cardweave`` logger tree. ``setup_logging``
attaches one rotating JSONL file handler (5MB, 3 backups) at
<project>/.cardweave/cardweave.log. Each line carries the standard fields
plus whichever operation extras the record has.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

_LOG_FILENAME = "cardweave.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3

# (LogRecord attribute set via ``extra=``, JSON key)
_EXTRA_FIELDS: tuple[tuple[str, str], ...] = (
    ("operation", "operation"),
    ("card", "card"),
    ("args_data", "args"),
    ("duration_ms", "duration_ms"),
    ("error", "error"),
)


class _JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({key: getattr(record, attr) for attr, key in _EXTRA_FIELDS if hasattr(record, attr)})
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def _drop_file_handlers(logger: logging.Logger, keep: str) -> bool:
    """Close every rotating handler not writing to *keep*; True if one does."""
    kept = False
    for handler in [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]:
        if handler.baseFilename == keep and not kept:
            kept = True
            continue
        logger.removeHandler(handler)
        handler.close()
    return kept


def setup_logging(log_dir: Path, level: int | str = logging.INFO) -> logging.Logger:
    """Send the ``cardweave`` logger to <log_dir>/cardweave.log at *level*.

    Safe to call repeatedly and from several threads: the same directory keeps
    its existing handler, a new directory replaces it.
    """
    logger = logging.getLogger("cardweave")
    log_path = log_dir / _LOG_FILENAME

    with _setup_lock:
        logger.setLevel(level)
        if _drop_file_handlers(logger, os.path.abspath(log_path)):
            return logger
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT)
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
    return logger
