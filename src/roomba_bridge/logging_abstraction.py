"""Structured logging for the Roomba bridge.

Every record carries the current correlation id and an optional ``extra``
mapping of context. ``ROOMBA_LOG_FORMAT`` selects the output: ``human``
lines on stdout/stderr/a file, ``json`` lines in ``ROOMBA_LOG_JSON_FILE``,
or ``both``.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import override

from roomba_bridge.const import (
    ROOMBA_DEBUG,
    ROOMBA_LOG_CORRELATION_ENABLED,
    ROOMBA_LOG_FORMAT,
    ROOMBA_LOG_HUMAN_OUTPUT,
    ROOMBA_LOG_JSON_FILE,
)
from roomba_bridge.correlation import get_correlation_id

__all__ = [
    "BridgeLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "get_logger",
]


def _context_of(record: logging.LogRecord) -> dict[str, object]:
    extra_data = getattr(record, "extra_data", None)
    return dict(extra_data) if isinstance(extra_data, Mapping) else {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "location": f"{record.module}:{record.lineno}",
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context_of(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``time level [module:line] [corr-id] > message | key=value ...``"""

    def __init__(self, show_correlation: bool = True) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )
        self.show_correlation: bool = show_correlation

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id() if self.show_correlation else None
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"
        line = super().format(record)
        context = _context_of(record)
        if context:
            line += " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return line


def _human_handler(target: str) -> logging.Handler:
    if target == "stdout":
        return logging.StreamHandler(sys.stdout)
    if target == "stderr":
        return logging.StreamHandler(sys.stderr)
    try:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a")
    except OSError as e:
        print(f"Warning: cannot log to {target} ({e}), using stdout", file=sys.stderr)
        return logging.StreamHandler(sys.stdout)


def _json_handler(target: str) -> logging.Handler | None:
    try:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a")
    except OSError as e:
        print(f"Warning: cannot write JSON log {target} ({e})", file=sys.stderr)
        return None


class BridgeLogger:
    """Wrapper around a stdlib logger taking ``%``-style args plus ``extra=``."""

    def __init__(self, name: str, log_format: str, human_output: str) -> None:
        self.logger: logging.Logger = logging.getLogger(name)
        # getLogger returns the same object for a name, so only configure it once
        if not self.logger.handlers:
            self.logger.setLevel(logging.DEBUG if ROOMBA_DEBUG else logging.INFO)
            self._attach_handlers(log_format, human_output)
            self.logger.propagate = False

    def _attach_handlers(self, log_format: str, human_output: str) -> None:
        if log_format in ("json", "both"):
            handler = _json_handler(ROOMBA_LOG_JSON_FILE)
            if handler is not None:
                handler.setFormatter(JSONFormatter())
                self.logger.addHandler(handler)
        if log_format in ("human", "both"):
            handler = _human_handler(human_output)
            handler.setFormatter(HumanReadableFormatter(show_correlation=ROOMBA_LOG_CORRELATION_ENABLED))
            self.logger.addHandler(handler)

    def _log(
        self,
        level: int,
        msg: str,
        args: tuple[object, ...],
        extra: Mapping[str, object] | None,
        exc_info: bool = False,
    ) -> None:
        # stacklevel=3 attributes the record to the caller of debug()/info()/...
        self.logger.log(
            level,
            msg,
            *args,
            extra={"extra_data": dict(extra)} if extra else None,
            exc_info=exc_info,
            stacklevel=3,
        )

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, args, extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, args, extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, args, extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, args, extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, args, extra, exc_info=True)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


def get_logger(name: str, log_format: str | None = None, human_output: str | None = None) -> BridgeLogger:
    """Get or create the BridgeLogger for ``name``; outputs default from ROOMBA_LOG_* settings."""
    return BridgeLogger(name, log_format or ROOMBA_LOG_FORMAT, human_output or ROOMBA_LOG_HUMAN_OUTPUT)
