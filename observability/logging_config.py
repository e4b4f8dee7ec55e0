"""Structured logging configuration."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_fields"):
            log_dict.update(record.extra_fields)

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """Logger adapter that folds ``extra=`` kwargs into structured fields."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        if self.extra:
            for key, value in self.extra.items():
                extra.setdefault(key, value)
        kwargs["extra"] = {"extra_fields": extra}
        return msg, kwargs


_configured = False


def _level_from_env(default: int) -> int:
    raw = os.getenv("LOG_LEVEL", "").strip().upper()
    if not raw:
        return default
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def configure_logging(
    level: int = logging.INFO,
    structured: bool | None = None,
) -> None:
    """Configure root logging once per process.

    ``LOG_LEVEL`` overrides ``level``; ``LOG_FORMAT=plain`` switches to the
    human-readable formatter when ``structured`` is not given explicitly.
    """
    global _configured
    if _configured:
        return

    if structured is None:
        structured = os.getenv("LOG_FORMAT", "json").strip().lower() != "plain"

    root_logger = logging.getLogger()
    root_logger.setLevel(_level_from_env(level))

    handler = logging.StreamHandler(sys.stderr)
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)
    _configured = True


def get_logger(name: str, **extra: Any) -> StructuredLogger:
    """Get a structured logger with optional default extra fields."""
    configure_logging()
    base_logger = logging.getLogger(name)
    return StructuredLogger(base_logger, extra)
