"""Structured Logging: JSON formatter and setup for rtdb-bridge diagnostics.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (path, method, listener, state, database_url...) surfaced when present
    - JSON format by default, human-readable when fmt != "json"
    - At most one handler installed by setup_logging at a time
"""

import json
import logging
from datetime import datetime, timezone

_installed_handler: logging.Handler | None = None

_EXTRA_FIELDS = (
    "database_url", "path", "method", "listener", "state", "event",
    "error_code", "status_code", "operation", "admin",
)


class JSONFormatter(logging.Formatter):
    """Format logs as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Attach one stream handler to the package logger, replacing a previous one."""
    global _installed_handler
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    package_logger = logging.getLogger("rtdb_bridge")
    if _installed_handler is not None:
        package_logger.removeHandler(_installed_handler)
    package_logger.addHandler(handler)
    _installed_handler = handler
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
