"""Structured JSON logging to a stream."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
}


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc)
            .astimezone()
            .isoformat(),
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname),
            "source": {
                "function": record.funcName,
                "file": record.pathname,
                "line": record.lineno,
            },
            "msg": record.getMessage(),
        }
        entry.update(getattr(record, "fields", {}))
        return json.dumps(entry, default=str, ensure_ascii=False)


class Logger:
    """Writes one JSON object per line with level, source and key-value fields.

    Unknown level names fall back to ``info``.
    """

    def __init__(self, level: str = "info", stream: TextIO | None = None) -> None:
        self._logger = logging.Logger("quotesvc")
        self._logger.setLevel(_LEVELS.get(level, logging.INFO))
        handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        handler.setFormatter(_JsonFormatter())
        self._logger.addHandler(handler)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._logger.log(logging.DEBUG, msg, extra={"fields": kwargs}, stacklevel=2)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._logger.log(logging.INFO, msg, extra={"fields": kwargs}, stacklevel=2)

    def warn(self, msg: str, **kwargs: Any) -> None:
        self._logger.log(logging.WARNING, msg, extra={"fields": kwargs}, stacklevel=2)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._logger.log(logging.ERROR, msg, extra={"fields": kwargs}, stacklevel=2)