"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True, frozen=True)
class Location:
    latitude: float
    longitude: float
    address: Optional[str] = None


@dataclass(slots=True, frozen=True)
class PollutantReadings:
    """Measurements carried by a single reading.

    Pollutant fields are optional here because historical feeds may omit
    them; ingestion validation requires them.
    """

    aqi: float
    pm25: Optional[float] = None
    pm10: Optional[float] = None
    ozone: Optional[float] = None
    no2: Optional[float] = None
    so2: Optional[float] = None
    co: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pressure: Optional[float] = None


@dataclass(slots=True, frozen=True)
class DeviceInfo:
    status: str
    battery_level: Optional[float] = None
    last_maintenance: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class SensorReading:
    """A single validated sensor reading."""

    sensor_id: str
    timestamp: datetime
    location: Location
    readings: PollutantReadings
    device_info: Optional[DeviceInfo] = None

    def metric(self, name: str) -> Optional[float]:
        """Return the named measurement, or ``None`` when absent."""
        return getattr(self.readings, name, None)
