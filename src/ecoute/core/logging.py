"""
Ecoute logging: colored text on a terminal, one JSON object per line with
ECOUTE_LOG_FORMAT=json. Relay code tags records via extra={...}.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
}
_DIM = "\033[2m"
_RESET = "\033[0m"

# Keys the relay passes through extra={...}
_STRUCTURED_FIELDS = ("connection_id", "role", "session_id", "frame_type")

_QUIET_LOGGERS = ("aiosqlite", "websockets", "uvicorn.access")


class ColorFormatter(logging.Formatter):
    """``HH:MM:SS [logger] LEVEL: message``, level and logger name colored."""

    def __init__(self, use_color: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)

        levelname, name = record.levelname, record.name
        record.levelname = f"{_LEVEL_COLORS.get(levelname, '')}{levelname}{_RESET}"
        record.name = f"{_DIM}{name}{_RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers see the record unchanged
            record.levelname, record.name = levelname, name


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, relay extra fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in _STRUCTURED_FIELDS
            if hasattr(record, key)
        )
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _should_use_color() -> bool:
    setting = os.getenv("ECOUTE_LOG_COLOR", "auto").lower()
    if setting in ("true", "false"):
        return setting == "true"
    return sys.stdout.isatty()


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Call once at startup."""
    level_name = os.getenv("ECOUTE_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = os.getenv("ECOUTE_LOG_FORMAT", "text").lower()

    formatter: logging.Formatter
    if log_format == "json":
        formatter = StructuredFormatter()
    else:
        formatter = ColorFormatter(use_color=_should_use_color())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(level)

    logging.getLogger("ecoute").debug(
        "Logging configured (level=%s, format=%s)", level_name, log_format
    )
