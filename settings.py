from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterable, Optional, TypeVar


_INGEST_TTL_ENV = "INGEST_CACHE_TTL_SECONDS"
_INGEST_MAX_ENV = "INGEST_CACHE_MAX_ENTRIES"
_REPORT_TTL_ENV = "REPORT_CACHE_TTL_SECONDS"
_REPORT_MAX_ENV = "REPORT_CACHE_MAX_ENTRIES"
_RETENTION_DAYS_ENV = "SENSOR_RETENTION_DAYS"
_ARCHIVE_PATH_ENV = "READING_ARCHIVE_PATH"
_ARCHIVE_MAX_ENV = "READING_ARCHIVE_MAX_READINGS"
_SOURCE_ENV = "HISTORICAL_SOURCE"
_SOURCE_URL_ENV = "HISTORICAL_SOURCE_URL"
_SOURCE_TIMEOUT_ENV = "HISTORICAL_SOURCE_TIMEOUT"
_SOURCE_RETRIES_ENV = "HISTORICAL_SOURCE_RETRIES"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_HISTORICAL_SOURCES = ("archive", "simulated", "http")

N = TypeVar("N", int, float)


@dataclass(frozen=True)
class Settings:
    ingest_cache_ttl_seconds: float
    ingest_cache_max_entries: int
    report_cache_ttl_seconds: float
    report_cache_max_entries: int
    retention_days: int
    archive_path: Optional[str]
    archive_max_readings: int
    historical_source: str
    historical_source_url: Optional[str]
    historical_source_timeout: float
    historical_source_retries: int
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or None


def _read_number(name: str, default: N, cast: Callable[[str], N], allow_zero: bool = False) -> N:
    """Parse a numeric variable; blank, malformed or out-of-range values keep the default."""
    candidate = (os.getenv(name) or "").strip()
    if not candidate:
        return default
    try:
        parsed = cast(candidate)
    except ValueError:
        return default
    if parsed < 0 or (parsed == 0 and not allow_zero):
        return default
    return parsed


def _read_choice(name: str, choices: Iterable[str], default: str) -> str:
    candidate = (os.getenv(name) or "").strip().lower()
    return candidate if candidate in choices else default


def _read_log_level(default: str) -> str:
    candidate = (os.getenv(_LOG_LEVEL_ENV) or "").strip()
    return candidate.upper() or default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        ingest_cache_ttl_seconds=_read_number(_INGEST_TTL_ENV, 300.0, float),
        ingest_cache_max_entries=_read_number(_INGEST_MAX_ENV, 500, int),
        report_cache_ttl_seconds=_read_number(_REPORT_TTL_ENV, 900.0, float),
        report_cache_max_entries=_read_number(_REPORT_MAX_ENV, 1000, int),
        retention_days=_read_number(_RETENTION_DAYS_ENV, 7, int),
        archive_path=_read_optional_env(_ARCHIVE_PATH_ENV, "./tmp/readings.jsonl"),
        archive_max_readings=_read_number(_ARCHIVE_MAX_ENV, 10000, int),
        historical_source=_read_choice(_SOURCE_ENV, _HISTORICAL_SOURCES, "archive"),
        historical_source_url=_read_optional_env(_SOURCE_URL_ENV, None),
        historical_source_timeout=_read_number(_SOURCE_TIMEOUT_ENV, 30.0, float),
        historical_source_retries=_read_number(_SOURCE_RETRIES_ENV, 2, int, allow_zero=True),
        log_level=_read_log_level("INFO"),
    )
