"""JSON logging to standard output."""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import TextIO

__all__ = ["JsonFormatter", "setup", "get_logger"]

_LOGGER_NAME = "walstream"
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "": logging.INFO,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "dpanic": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


def _level_name(levelno: int) -> str:
    if levelno >= logging.CRITICAL:
        return "FATAL"
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARN"
    if levelno >= logging.INFO:
        return "INFO"
    return "DEBUG"


class JsonFormatter(logging.Formatter):
    """Format records as one JSON object per line.

    Structured values passed as ``extra={"fields": {...}}`` are merged in.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": time.strftime(_TIME_FORMAT, time.localtime(record.created)),
            "level": _level_name(record.levelno),
            "logger": record.name,
            "caller": f"{record.pathname}:{record.lineno}",
            "message": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            entry.update(fields)
        if record.exc_info:
            entry["stacktrace"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def get_logger() -> logging.Logger:
    """Return the package logger."""
    return logging.getLogger(_LOGGER_NAME)


def setup(level: str, stream: TextIO | None = None) -> logging.Logger:
    """Configure the package logger to write JSON lines at ``level``.

    Raises :class:`ValueError` for an unrecognised level name.
    """
    try:
        levelno = _LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f'unrecognized level: "{level}"') from None

    handler = logging.StreamHandler(sys.stdout if stream is None else stream)
    handler.setFormatter(JsonFormatter())
    handler.setLevel(levelno)

    logger = get_logger()
    for old in list(logger.handlers):
        logger.removeHandler(old)
    logger.addHandler(handler)
    logger.setLevel(levelno)
    logger.propagate = False
    return logger