from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Optional

import pytest

from app.schemas import DataQuality
from models.records import DeviceInfo, Location, PollutantReadings, SensorReading
from services.quality import bucket_for_score, quality_score, score_reading

_POLLUTANTS = ("pm25", "pm10", "ozone", "no2")


def _reading(
    status: Optional[str] = "active",
    battery: Optional[float] = 80,
    missing: int = 0,
) -> SensorReading:
    values = {name: 10.0 for name in _POLLUTANTS}
    for name in _POLLUTANTS[:missing]:
        values[name] = None
    return SensorReading(
        sensor_id="sensor-q",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        location=Location(latitude=0.0, longitude=0.0),
        readings=PollutantReadings(aqi=50, so2=1.0, co=1.0, **values),
        device_info=DeviceInfo(status=status, battery_level=battery) if status else None,
    )


def test_complete_healthy_reading_is_excellent() -> None:
    assert score_reading(_reading()) is DataQuality.excellent


def test_reading_without_device_info_is_excellent() -> None:
    assert score_reading(_reading(status=None)) is DataQuality.excellent


@pytest.mark.parametrize(
    ("kwargs", "score", "bucket"),
    [
        ({"missing": 1}, 90, DataQuality.excellent),
        ({"missing": 2}, 80, DataQuality.good),
        ({"missing": 4}, 60, DataQuality.fair),
        ({"status": "maintenance"}, 80, DataQuality.good),
        ({"status": "maintenance", "battery": 10}, 65, DataQuality.fair),
        ({"status": "error"}, 50, DataQuality.fair),
        ({"status": "error", "battery": 5}, 35, DataQuality.poor),
        ({"status": "error", "missing": 1}, 40, DataQuality.poor),
        ({"status": "inactive"}, 100, DataQuality.excellent),
        ({"battery": 19.9}, 85, DataQuality.good),
        ({"battery": 20}, 100, DataQuality.excellent),
        ({"battery": 0}, 85, DataQuality.good),
        ({"status": "error", "battery": 0}, 35, DataQuality.poor),
        ({"battery": None}, 100, DataQuality.excellent),
    ],
)
def test_penalties_and_buckets(kwargs: dict, score: int, bucket: DataQuality) -> None:
    reading = _reading(**kwargs)

    assert quality_score(reading) == score
    assert score_reading(reading) is bucket


@pytest.mark.parametrize(
    ("score", "bucket"),
    [
        (100, DataQuality.excellent),
        (90, DataQuality.excellent),
        (89, DataQuality.good),
        (70, DataQuality.good),
        (69, DataQuality.fair),
        (50, DataQuality.fair),
        (49, DataQuality.poor),
        (-15, DataQuality.poor),
    ],
)
def test_bucket_thresholds(score: int, bucket: DataQuality) -> None:
    assert bucket_for_score(score) is bucket


def test_error_status_never_scores_above_fair() -> None:
    allowed = {DataQuality.fair, DataQuality.poor}
    for battery, missing in itertools.product([None, 0, 5, 19, 20, 100], range(5)):
        reading = _reading(status="error", battery=battery, missing=missing)
        expected = 100 - 50 - missing * 10 - (15 if battery and battery < 20 else 0)

        assert quality_score(reading) == expected
        assert score_reading(reading) in allowed
        assert score_reading(reading) is bucket_for_score(expected)
