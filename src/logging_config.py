"""
Structured logging configuration.

- Development: human-readable colored format
- Production / WORKTRACK_LOG_JSON=1: JSON format (log aggregator compatible)
- Log level: controlled via WORKTRACK_LOG_LEVEL
"""

import json
import logging
import sys
from datetime import datetime, timezone

from settings import Settings


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    EXTRA_KEYS = (
        "method",
        "path",
        "status",
        "duration_ms",
        "project_id",
        "assignment_id",
        "event",
    )

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in self.EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        base = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(settings: Settings) -> None:
    """
    Install a single stderr handler on the root logger.

    JSON lines when ``log_json`` is set or the environment is production,
    the colored readable format otherwise.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    as_json = settings.log_json or settings.is_production
    formatter = JSONFormatter() if as_json else ReadableFormatter()

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("uvicorn.access", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s format=%s",
        settings.log_level.upper(), "JSON" if as_json else "readable",
    )
