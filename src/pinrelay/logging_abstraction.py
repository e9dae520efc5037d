"""Logging abstraction layer for pinrelay.

Handlers live on the package logger ("pinrelay"), so module loggers created
with ``logging.getLogger(__name__)`` and RelayLogger instances share the same
outputs. RelayLogger adds structured ``extra=`` context that the formatters
render next to the message.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

from pinrelay.correlation import get_correlation_id

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "RelayLogger",
    "configure_logging",
    "get_logger",
]


def _context_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return cast("Mapping[str, object]", extra_data)
    return None


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per line."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        context = _context_of(record)
        if context is not None:
            log_data["context"] = dict(context)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter that outputs human-readable logs with correlation IDs."""

    def __init__(self) -> None:
        # Format: timestamp level [module:line] correlation_id > message
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"

        formatted = super().format(record)

        context = _context_of(record)
        if context is not None:
            context_str = " | ".join(f"{k}={v}" for k, v in context.items())
            formatted = f"{formatted} | {context_str}"

        return formatted


def _human_handler(human_output: str) -> logging.Handler:
    if human_output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if human_output == "stderr":
        return logging.StreamHandler(sys.stderr)
    try:
        human_path = Path(human_output)
        human_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(human_path, mode="a")
    except OSError as e:
        print(f"Warning: Failed to create human log file {human_output}: {e}", file=sys.stderr)
        return logging.StreamHandler(sys.stdout)


def configure_logging(
    debug: bool | None = None,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> logging.Logger:
    """Attach handlers to the package logger, replacing any previous ones.

    Args:
        debug: DEBUG level if True, INFO otherwise (default: PINRELAY_DEBUG)
        log_format: "json", "human", or "both" (default: PINRELAY_LOG_FORMAT)
        json_file: JSON output file, JSON output is skipped without one
        human_output: "stdout", "stderr", or a file path

    Returns:
        The configured package logger

    """
    from pinrelay import const

    # Read the environment at call time so a freshly loaded .env applies
    debug = const.env_flag("PINRELAY_DEBUG") if debug is None else debug
    log_format = log_format or os.environ.get("PINRELAY_LOG_FORMAT", const.PINRELAY_LOG_FORMAT)
    json_file = json_file or os.environ.get("PINRELAY_LOG_JSON_FILE") or const.PINRELAY_LOG_JSON_FILE
    human_output = human_output or os.environ.get("PINRELAY_LOG_HUMAN_OUTPUT", const.PINRELAY_LOG_HUMAN_OUTPUT)

    root = logging.getLogger(const.PINRELAY_LOG_NAME)
    level = logging.DEBUG if debug else logging.INFO
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if log_format in ("json", "both") and json_file:
        try:
            json_path = Path(json_file)
            json_path.parent.mkdir(parents=True, exist_ok=True)
            json_handler = logging.FileHandler(json_path, mode="a")
        except OSError as e:
            print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
        else:
            json_handler.setFormatter(JSONFormatter())
            json_handler.setLevel(level)
            root.addHandler(json_handler)

    if log_format in ("human", "both"):
        human_handler = _human_handler(human_output)
        human_handler.setFormatter(HumanReadableFormatter())
        human_handler.setLevel(level)
        root.addHandler(human_handler)

    return root


class RelayLogger:
    """Logger wrapper accepting a structured ``extra`` mapping on every call."""

    def __init__(self, name: str) -> None:
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload: Mapping[str, object] | None = None
        if extra:
            extra_payload = {"extra_data": dict(extra)}
        # stacklevel=3 reports the caller of debug()/info(), not this wrapper
        self.logger.log(level, msg, *args, extra=extra_payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR level with the active exception's traceback."""
        log_extra = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=log_extra, stacklevel=2)


def get_logger(name: str) -> RelayLogger:
    """Return a RelayLogger for ``name`` (normally a module's ``__name__``)."""
    return RelayLogger(name)
