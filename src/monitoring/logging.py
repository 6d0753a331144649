"""Logging setup for the matchmaking core.

Everything under the ``src`` logger tree goes through one handler set:
- stderr always, plus an optional log file
- plain text for terminals, JSON lines for log shippers
- upload/meeting/actor identifiers attached via ``with_context``
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

ROOT_LOGGER_NAME = "src"
CONTEXT_FIELDS = ("upload_id", "operation", "actor_id", "meeting_id")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s %(context)s%(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        k: getattr(record, k)
        for k in CONTEXT_FIELDS
        if getattr(record, k, None) is not None
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per record, context fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_record_context(record))

        payload = getattr(record, "payload", None)
        if isinstance(payload, dict):
            entry["payload"] = payload
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Single-line text with a bracketed ``[key=value ...]`` context block."""

    def __init__(self) -> None:
        super().__init__(fmt=TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        context = _record_context(record)
        record.context = (
            "[" + " ".join(f"{k}={v}" for k, v in context.items()) + "] "
            if context
            else ""
        )
        return super().format(record)


def _handler(handler: logging.Handler, level: int, fmt: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def configure_logging(
    level: str = "INFO",
    *,
    json_logs: bool = False,
    log_file: str | Path | None = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Calling it again replaces the previous handlers.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logger.setLevel(numeric_level)
    logger.propagate = False

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    fmt: logging.Formatter = JsonFormatter() if json_logs else TextFormatter()
    logger.addHandler(_handler(logging.StreamHandler(sys.stderr), numeric_level, fmt))

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(
            _handler(logging.FileHandler(path, encoding="utf-8"), numeric_level, fmt)
        )

    return logger


def configure_from_settings(settings) -> logging.Logger:
    """Apply LOG_LEVEL / LOG_JSON from settings."""
    return configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that keeps per-call ``extra`` on top of bound context."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def with_context(logger: logging.Logger, **context: Any) -> ContextAdapter:
    """
    Bind identifiers to a logger.

    Example:
        log = with_context(logger, upload_id=result.upload_id, operation="upload")
        log.info("Parsed 12 rows")
    """
    return ContextAdapter(logger, {k: v for k, v in context.items() if v is not None})
