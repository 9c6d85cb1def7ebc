from __future__ import annotations

from typing import Iterable

from datastore.reading_archive import build_default_archive
from services.analytics import build_default_analytics_service
from services.historical import SimulatedHistoricalSource, build_default_source
from services.processor import build_default_processor
from settings import get_settings

_ENV_NAMES = (
    "INGEST_CACHE_TTL_SECONDS",
    "INGEST_CACHE_MAX_ENTRIES",
    "REPORT_CACHE_TTL_SECONDS",
    "REPORT_CACHE_MAX_ENTRIES",
    "SENSOR_RETENTION_DAYS",
    "READING_ARCHIVE_PATH",
    "READING_ARCHIVE_MAX_READINGS",
    "HISTORICAL_SOURCE",
    "HISTORICAL_SOURCE_URL",
    "HISTORICAL_SOURCE_TIMEOUT",
    "HISTORICAL_SOURCE_RETRIES",
    "LOG_LEVEL",
)


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_defaults_apply_without_environment(monkeypatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()

    try:
        settings = get_settings()

        assert settings.ingest_cache_ttl_seconds == 300.0
        assert settings.ingest_cache_max_entries == 500
        assert settings.report_cache_ttl_seconds == 900.0
        assert settings.report_cache_max_entries == 1000
        assert settings.retention_days == 7
        assert settings.archive_path == "./tmp/readings.jsonl"
        assert settings.archive_max_readings == 10000
        assert settings.historical_source == "archive"
        assert settings.historical_source_url is None
        assert settings.historical_source_timeout == 30.0
        assert settings.historical_source_retries == 2
        assert settings.log_level == "INFO"
    finally:
        get_settings.cache_clear()


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("INGEST_CACHE_MAX_ENTRIES", "-3")
    monkeypatch.setenv("REPORT_CACHE_TTL_SECONDS", "soon")
    monkeypatch.setenv("SENSOR_RETENTION_DAYS", "   ")
    monkeypatch.setenv("HISTORICAL_SOURCE", "carrier-pigeon")
    monkeypatch.setenv("HISTORICAL_SOURCE_RETRIES", "-1")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    get_settings.cache_clear()

    try:
        settings = get_settings()

        assert settings.ingest_cache_max_entries == 500
        assert settings.report_cache_ttl_seconds == 900.0
        assert settings.retention_days == 7
        assert settings.historical_source == "archive"
        assert settings.historical_source_retries == 2
        assert settings.log_level == "DEBUG"
    finally:
        get_settings.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    archive_path = tmp_path / "archive.json"

    monkeypatch.setenv("INGEST_CACHE_TTL_SECONDS", "45")
    monkeypatch.setenv("INGEST_CACHE_MAX_ENTRIES", "12")
    monkeypatch.setenv("REPORT_CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("REPORT_CACHE_MAX_ENTRIES", "8")
    monkeypatch.setenv("READING_ARCHIVE_PATH", str(archive_path))
    monkeypatch.setenv("READING_ARCHIVE_MAX_READINGS", "50")
    monkeypatch.setenv("HISTORICAL_SOURCE", "Simulated")
    monkeypatch.setenv("HISTORICAL_SOURCE_RETRIES", "0")

    caches = (
        get_settings,
        build_default_archive,
        build_default_source,
        build_default_processor,
        build_default_analytics_service,
    )
    _clear_caches(caches)

    processor = build_default_processor()
    analytics = build_default_analytics_service()

    try:
        assert get_settings().historical_source_retries == 0
        assert processor.cache.ttl_seconds == 45.0
        assert processor.cache.max_entries == 12
        assert processor.archive is build_default_archive()
        assert processor.archive.persistence_path == archive_path
        assert processor.archive.max_readings == 50
        assert analytics.cache.ttl_seconds == 60.0
        assert analytics.cache.max_entries == 8
        assert isinstance(analytics.source, SimulatedHistoricalSource)
        assert build_default_processor() is processor
    finally:
        processor.shutdown()
        _clear_caches(caches)
