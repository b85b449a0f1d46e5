"""Logging configuration.

- Development: human-readable format
- Production: JSON lines for log aggregation
- Level: ``LOG_LEVEL`` setting (default DEBUG in development, INFO in production)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from workload_ledger.core.config import Settings

_EXTRA_FIELDS = (
    "employee_id",
    "project_id",
    "recipient_id",
    "notification_key",
    "version",
    "attempt",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = str(value)
        return json.dumps(entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    """Single-line formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%H:%M:%S")
        base = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(settings: Settings) -> None:
    """Install a single stderr handler on the root logger."""

    level_name = settings.log_level or ("INFO" if settings.is_production else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)
    use_json = settings.log_json if settings.log_json is not None else settings.is_production

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "sqlalchemy.engine", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s format=%s", level_name, "JSON" if use_json else "readable"
    )
