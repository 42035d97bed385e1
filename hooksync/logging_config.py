"""
Logging Configuration — Structured logging setup.

Provides consistent logging across all modules with:
- JSON output for production (machine-readable)
- Human-readable output for development
- Configurable log levels

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)

## Usage

    from hooksync.logging_config import setup_logging

    setup_logging()  # Call once at startup

The sync core never logs through a module-level logger. It receives a
logger explicitly and falls back to ``null_logger()`` when none is given.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

NULL_LOGGER_NAME = "hooksync.null"

# LogRecord attributes passed through `extra=` by the sync core
_EXTRA_FIELDS = ("repository", "project", "elapsed_ms", "reason")


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {"ts": "...", "level": "...", "logger": "...", "message": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanFormatter(logging.Formatter):
    """
    Human-readable log formatter for development.

    Output format:
    12:34:56 INFO  [module] Message
    """

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.now().strftime("%H:%M:%S")

        level = record.levelname
        if sys.stderr.isatty():
            color = self.COLORS.get(level, "")
            level = f"{color}{level:7}{self.RESET}"
        else:
            level = f"{level:7}"

        module = record.name.split(".")[-1][:15]
        line = f"{time_str} {level} [{module:15}] {record.getMessage()}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
               Defaults to LOG_LEVEL env var or INFO.
        format_type: Output format (json, text).
                     Defaults to LOG_FORMAT env var or text.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_format = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()

    numeric_level = getattr(logging, log_level, logging.INFO)

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)
    root.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )


def null_logger() -> logging.Logger:
    """
    Return a logger that discards everything.

    It does not propagate, so records never reach the root handlers even
    after ``setup_logging()`` has run.
    """
    logger = logging.getLogger(NULL_LOGGER_NAME)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger
