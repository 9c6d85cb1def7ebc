"""Process-wide logging setup with ``key=value`` context suffixes."""

from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Tuple

from settings import get_settings

CONTEXT_KEYS: Tuple[str, ...] = (
    "sensor_id",
    "ingestion_id",
    "cache_key",
    "report_type",
    "reason",
    "status",
    "processing_ms",
    "error_count",
    "reading_count",
)

LOG_FORMAT = "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Client libraries log every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Suffix a record with whichever context keys were passed via ``extra``."""

    converter = time.gmtime

    def __init__(self, *args: Any, context_keys: Iterable[str] = CONTEXT_KEYS, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.context_keys = tuple(context_keys)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = " ".join(
            f"{key}={_render(getattr(record, key))}"
            for key in self.context_keys
            if getattr(record, key, None) is not None
        )
        return f"{line} | {context}" if context else line


def _render(value: Any) -> str:
    return f"{value:.2f}" if isinstance(value, float) else str(value)


def build_logging_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": ContextualFormatter,
                "fmt": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "contextual",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _NOISY_LOGGERS},
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the contextual console handler once per process."""
    global _configured
    if _configured:
        return
    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
