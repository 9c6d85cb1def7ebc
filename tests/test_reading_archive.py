from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from datastore.reading_archive import ReadingArchive, build_default_archive
from models.records import DeviceInfo, Location, PollutantReadings, SensorReading
from services.errors import ArchiveError
from settings import get_settings

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _reading(hour: int, aqi: float = 50, sensor_id: str = "sensor-a") -> SensorReading:
    return SensorReading(
        sensor_id=sensor_id,
        timestamp=START + timedelta(hours=hour),
        location=Location(latitude=24.7, longitude=46.7, address="Olaya"),
        readings=PollutantReadings(aqi=aqi, pm25=10, pm10=20, ozone=30, no2=5, so2=1, co=0.5),
        device_info=DeviceInfo(
            status="maintenance",
            battery_level=42,
            last_maintenance=START - timedelta(days=3),
        ),
    )


def test_fetch_readings_filters_inclusive_range_in_time_order() -> None:
    archive = ReadingArchive()
    for hour in (5, 0, 3, 8):
        archive.append(_reading(hour))

    selected = archive.fetch_readings(START + timedelta(hours=3), START + timedelta(hours=5))

    assert [reading.timestamp.hour for reading in selected] == [3, 5]
    assert len(archive) == 4


def test_archive_keeps_most_recent_readings() -> None:
    archive = ReadingArchive(max_readings=3)
    for hour in range(5):
        archive.append(_reading(hour, aqi=hour))

    kept = archive.fetch_readings(START, START + timedelta(days=1))

    assert [reading.readings.aqi for reading in kept] == [2, 3, 4]


def test_archive_persists_and_reloads(tmp_path) -> None:
    path = tmp_path / "archive" / "readings.jsonl"
    archive = ReadingArchive(persistence_path=path)
    archive.append(_reading(1, aqi=77))
    archive.append(_reading(2, aqi=78))

    lines = path.read_text().splitlines()
    reloaded = ReadingArchive(persistence_path=path)

    assert len(lines) == 2
    stored = json.loads(lines[0])
    assert stored["sensor_id"] == "sensor-a"
    assert stored["readings"]["timestamp"] == (START + timedelta(hours=1)).isoformat()
    assert len(reloaded) == 2
    reading = reloaded.fetch_readings(START, START + timedelta(days=1))[0]
    assert reading == _reading(1, aqi=77)


def test_append_writes_one_line_without_rewriting(tmp_path) -> None:
    path = tmp_path / "readings.jsonl"
    archive = ReadingArchive(persistence_path=path)
    archive.append(_reading(1))
    first_line = path.read_text()

    archive.append(_reading(2))

    assert path.read_text().startswith(first_line)
    assert len(path.read_text().splitlines()) == 2


def test_file_is_compacted_once_it_outgrows_capacity(tmp_path) -> None:
    path = tmp_path / "readings.jsonl"
    archive = ReadingArchive(max_readings=2, persistence_path=path)
    for hour in range(4):
        archive.append(_reading(hour, aqi=hour))

    assert len(path.read_text().splitlines()) == 4

    archive.append(_reading(4, aqi=4))

    lines = path.read_text().splitlines()
    assert [json.loads(line)["readings"]["aqi"] for line in lines] == [3, 4]
    reloaded = ReadingArchive(max_readings=2, persistence_path=path)
    assert [r.readings.aqi for r in reloaded.fetch_readings(START, START + timedelta(days=1))] == [3, 4]


def test_reload_keeps_only_the_most_recent_lines(tmp_path) -> None:
    path = tmp_path / "readings.jsonl"
    writer = ReadingArchive(max_readings=10, persistence_path=path)
    for hour in range(5):
        writer.append(_reading(hour, aqi=hour))

    reloaded = ReadingArchive(max_readings=3, persistence_path=path)

    assert [r.readings.aqi for r in reloaded.fetch_readings(START, START + timedelta(days=1))] == [2, 3, 4]


def test_reload_skips_invalid_lines(tmp_path) -> None:
    path = tmp_path / "readings.jsonl"
    ReadingArchive(persistence_path=path).append(_reading(2))
    with path.open("a") as handle:
        handle.write('{"sensor_id": "broken"}\n')
        handle.write("{not json\n")
        handle.write("\n")

    reloaded = ReadingArchive(persistence_path=path)

    assert len(reloaded) == 1


def test_unreadable_archive_starts_empty(tmp_path) -> None:
    path = tmp_path / "readings.jsonl"
    path.write_bytes(b"\xff\xfe\x00garbage")

    assert len(ReadingArchive(persistence_path=path)) == 0

    path.write_text(json.dumps([{"sensor_id": "legacy"}]))
    assert len(ReadingArchive(persistence_path=path)) == 0


def test_write_failure_raises_archive_error_and_keeps_memory_unchanged(tmp_path) -> None:
    path = tmp_path / "readings.jsonl"
    path.mkdir()
    archive = ReadingArchive(persistence_path=path)

    with pytest.raises(ArchiveError):
        archive.append(_reading(1))

    assert len(archive) == 0


def test_build_default_archive_uses_settings(monkeypatch, tmp_path) -> None:
    path = tmp_path / "default.jsonl"
    monkeypatch.setenv("READING_ARCHIVE_PATH", str(path))
    monkeypatch.setenv("READING_ARCHIVE_MAX_READINGS", "25")
    get_settings.cache_clear()
    build_default_archive.cache_clear()
    try:
        archive = build_default_archive()

        assert archive.persistence_path == path
        assert archive.max_readings == 25
        assert build_default_archive() is archive
    finally:
        build_default_archive.cache_clear()
        get_settings.cache_clear()


def test_blank_archive_path_disables_persistence(monkeypatch) -> None:
    monkeypatch.setenv("READING_ARCHIVE_PATH", "")
    get_settings.cache_clear()
    build_default_archive.cache_clear()
    try:
        archive = build_default_archive()
        archive.append(_reading(0))

        assert archive.persistence_path is None
        assert len(archive) == 1
    finally:
        build_default_archive.cache_clear()
        get_settings.cache_clear()
