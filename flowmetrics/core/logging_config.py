"""
Logging for the flow metrics engine.

Calculation modules only ever call get_logger(__name__) and attach request
identifiers (org_id, perspective, counts) through ``extra={...}``. Handlers are
installed once, here:

- console: human-readable, or JSON when FLOWMETRICS_LOG_JSON is set
- file (FLOWMETRICS_LOG_FILE): always JSON, one document per line

Usage:
    from flowmetrics.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Lead time distribution computed", extra={"org_id": "org-1", "item_count": 42})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flowmetrics.core.config import LoggingConfig

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers of the numeric stack that are noisy at INFO
QUIET_LOGGERS = ("numexpr", "matplotlib")

# Attributes every LogRecord carries; anything else arrived through extra={...}
_STANDARD_RECORD_FIELDS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "extra_fields"}


class JSONFormatter(logging.Formatter):
    """
    One JSON document per record.

    Request fields passed with ``extra={...}`` sit at the top level next to the
    standard fields; ``extra_fields`` from log_with_context() are flattened in.
    """

    def format(self, record: logging.LogRecord) -> str:
        document: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        document.update(
            (key, value) for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_FIELDS
        )
        document.update(getattr(record, "extra_fields", {}))
        return json.dumps(document, default=str)


class ContextFormatter(logging.Formatter):
    """Console formatter; the level name is coloured when stderr is a terminal."""

    LEVEL_COLOURS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        if not sys.stderr.isatty():
            return super().formatMessage(record)

        plain = record.levelname
        record.levelname = f"{self.LEVEL_COLOURS.get(record.levelno, '')}{plain}{self.RESET}"
        try:
            return super().formatMessage(record)
        finally:
            record.levelname = plain


def _console_handler(level: int, json_output: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ContextFormatter(fmt=CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT))
    return handler


def _file_handler(level: int, log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    json_output: bool = False,
) -> None:
    """
    Replace the root handlers with the engine's console (and optional file) handler.

    Args:
        level: Level name; unknown names fall back to INFO
        log_file: JSON lines file, parent directories are created
        json_output: JSON on the console instead of the readable format

    Example:
        setup_logging(level="DEBUG")
        setup_logging(level="INFO", log_file=Path("logs/flowmetrics.log"), json_output=True)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(_console_handler(log_level, json_output))
    if log_file:
        root.addHandler(_file_handler(log_level, log_file))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_from_environment(logging_config: LoggingConfig | None = None) -> None:
    """Apply the logging section of EngineConfig (get_config() when not given)."""
    if logging_config is None:
        from flowmetrics.core.config import get_config

        logging_config = get_config().logging

    setup_logging(
        level=logging_config.level,
        log_file=logging_config.log_file,
        json_output=logging_config.json_output,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, **context: Any) -> None:
    """
    Log with context fields that JSONFormatter flattens into the document.

    Example:
        log_with_context(logger, "info", "Service levels computed", org_id="org-1", groups=4)
    """
    getattr(logger, level.lower())(message, extra={"extra_fields": context})


if not logging.getLogger().handlers:
    setup_logging(level="INFO", json_output=False)
