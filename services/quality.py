"""Data-quality scoring for individual readings."""

from __future__ import annotations

from app.schemas import DataQuality, DeviceStatus
from models.records import SensorReading

_SCORED_POLLUTANTS = ("pm25", "pm10", "ozone", "no2")
_MISSING_FIELD_PENALTY = 10
_STATUS_PENALTIES = {
    DeviceStatus.error.value: 50,
    DeviceStatus.maintenance.value: 20,
}
_LOW_BATTERY_THRESHOLD = 20
_LOW_BATTERY_PENALTY = 15


def quality_score(reading: SensorReading) -> int:
    score = 100

    missing = sum(1 for name in _SCORED_POLLUTANTS if reading.metric(name) is None)
    score -= missing * _MISSING_FIELD_PENALTY

    device = reading.device_info
    if device is not None:
        score -= _STATUS_PENALTIES.get(device.status, 0)
        if device.battery_level is not None and device.battery_level < _LOW_BATTERY_THRESHOLD:
            score -= _LOW_BATTERY_PENALTY

    return score


def bucket_for_score(score: int) -> DataQuality:
    if score >= 90:
        return DataQuality.excellent
    if score >= 70:
        return DataQuality.good
    if score >= 50:
        return DataQuality.fair
    return DataQuality.poor


def score_reading(reading: SensorReading) -> DataQuality:
    """Classify a reading's completeness and device health into a bucket."""
    return bucket_for_score(quality_score(reading))
