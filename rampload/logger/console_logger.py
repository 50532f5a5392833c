from __future__ import annotations

import logging
import sys
from typing import Any

from .base import Logger

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}


def parse_level(name: str | None, *, default: int = logging.INFO) -> int:
    """Map a level name (trace|debug|info|warn|error|fatal) to a logging level."""
    if not name:
        return default
    return _LEVELS.get(name.strip().lower(), default)


class _FieldsFormatter(logging.Formatter):
    """Renders ``| LEVEL |`` prefixes and appends structured fields as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = getattr(record, "fields", None)
        if not fields:
            return base
        rendered = " ".join(f"{key}={_render(value)}" for key, value in fields.items())
        return f"{base} {rendered}"


def _render(value: Any) -> str:
    text = str(value)
    if " " in text or not text:
        return repr(text)
    return text


class ConsoleLogger(Logger):
    """Logger that writes structured lines to stderr via the logging module."""

    def __init__(self, name: str = "rampload", level: int = logging.INFO, stream=None) -> None:
        self._logger = logging.getLogger(name)
        self._logger.propagate = False

        if not self._logger.handlers:
            handler = logging.StreamHandler(stream or sys.stderr)
            handler.setFormatter(
                _FieldsFormatter(
                    fmt="%(asctime)s | %(levelname)-7s| %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S%z",
                )
            )
            self._logger.addHandler(handler)

        self._logger.setLevel(level)

    @property
    def name(self) -> str:
        return self._logger.name

    def set_level(self, level: int) -> None:
        self._logger.setLevel(level)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, kwargs)

    def _log(self, level: int, message: str, fields: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        # "event" duplicates the message in most call sites
        if fields.get("event") == message:
            fields = {k: v for k, v in fields.items() if k != "event"}
        self._logger.log(level, message, extra={"fields": fields})
