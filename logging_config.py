from __future__ import annotations

import logging
import time
from datetime import datetime
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Sequence

from settings import get_settings

CONTEXT_KEYS = (
    "sensor_id",
    "farm_id",
    "status",
    "window",
    "state",
    "reason",
    "row_number",
    "reading_count",
    "sensor_count",
    "as_of",
    "duration_ms",
)

LOG_FORMAT = "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_configured = False


def _render(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float):
        return f"{value:g}"
    text = str(value)
    return repr(text) if " " in text else text


class ContextualFormatter(logging.Formatter):
    """Appends known ``extra`` fields to each line as ``key=value`` pairs.

    Values containing spaces are quoted so lines stay splittable on
    whitespace.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{key}={_render(getattr(record, key))}"
            for key in self._extra_keys
            if getattr(record, key, None) is not None
        ]
        if not context:
            return message
        return f"{message} | {' '.join(context)}"


def build_logging_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": "logging_config.ContextualFormatter",
                "fmt": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
                "extra_keys": list(CONTEXT_KEYS),
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "contextual",
            }
        },
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(level: str | int | None = None, force: bool = False) -> None:
    """Install the contextual formatter on the root logger once per process."""
    global _configured
    if _configured and not force:
        return

    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
