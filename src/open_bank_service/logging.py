"""
Structured JSON logging for the open bank service.

Every record becomes one JSON object per line. Fields passed through
``extra={...}`` are kept under ``"extra"`` so ledger identifiers such as
``account_id`` or ``withdrawal_state`` can be filtered on directly.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

SERVICE_LOGGER_NAME = "open_bank_service"

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def _utc_day(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime("%Y-%m-%d")


class JSONFormatter(logging.Formatter):
    """Render a record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).strftime(
                "%Y-%m-%d %H:%M"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, default=str)


class DailyFileHandler(logging.FileHandler):
    """
    Append records to ``<directory>/<YYYY-MM-DD>.log``, one file per UTC day.

    The day is taken from each record's creation time, and the handler
    moves to the next file on the first record of a new day.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._day = _utc_day(datetime.now(tz=UTC).timestamp())
        super().__init__(self._directory / f"{self._day}.log", encoding="utf-8", delay=True)

    def emit(self, record: logging.LogRecord) -> None:
        day = _utc_day(record.created)
        if day != self._day:
            if self.stream is not None:
                self.stream.close()
                self.stream = None  # type: ignore[assignment]
            self._day = day
            self.baseFilename = str((self._directory / f"{day}.log").resolve())
        super().emit(record)


def setup_logging(level: str, log_directory: str) -> logging.Logger:
    """
    Configure the service logger to write JSON lines to stdout and a daily file.

    Calling it again replaces the previous handlers.

    Raises:
        ValueError: If level is not a valid log level
    """
    level_name = level.upper()
    if level_name not in VALID_LOG_LEVELS:
        msg = f"Invalid log level: {level}. Must be one of {sorted(VALID_LOG_LEVELS)}"
        raise ValueError(msg)

    logger = logging.getLogger(SERVICE_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    Path(log_directory).mkdir(parents=True, exist_ok=True)
    formatter = JSONFormatter()
    for handler in (logging.StreamHandler(sys.stdout), DailyFileHandler(log_directory)):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level_name)
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the service namespace (module names already carry it)."""
    if name == SERVICE_LOGGER_NAME or name.startswith(f"{SERVICE_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{SERVICE_LOGGER_NAME}.{name}")
