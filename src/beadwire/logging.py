"""Structured JSON logging for beadwire.

Every ``beadwire.*`` logger propagates to one rotating file,
.beads/beadwire.log, written as one JSON object per line. Call sites attach
context through ``extra=``; the keys in ``CONTEXT_FIELDS`` are copied into
the entry whenever a record carries them.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FILENAME = "beadwire.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# operation/duration_ms: daemon round trips; transport/workspace: connects
CONTEXT_FIELDS: tuple[str, ...] = ("operation", "duration_ms", "transport", "workspace", "error")

_setup_lock = threading.Lock()


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)})
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = str(exc)
            entry["exception_type"] = type(exc).__name__
        return json.dumps(entry, default=str)


def _rotating_handlers(logger: logging.Logger) -> list[RotatingFileHandler]:
    return [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]


def setup_logging(beads_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """Route the ``beadwire`` logger to ``beads_dir``/beadwire.log.

    Safe to call repeatedly and from several threads. The same directory keeps
    its handler (only ``level`` is updated); a different directory replaces it,
    so one process never writes two workspace logs at once.
    """
    logger = logging.getLogger("beadwire")
    log_path = beads_dir / LOG_FILENAME
    target = os.path.abspath(log_path)

    with _setup_lock:
        logger.setLevel(level)
        stale = [h for h in _rotating_handlers(logger) if h.baseFilename != target]
        for h in stale:
            logger.removeHandler(h)
            h.close()
        if _rotating_handlers(logger):
            return logger

        handler = RotatingFileHandler(log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT)
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
    return logger
