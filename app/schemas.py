"""Pydantic schemas for ingestion payloads, analytics outputs and the HTTP API."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models.records import DeviceInfo, Location, PollutantReadings, SensorReading


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DeviceStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    maintenance = "maintenance"
    error = "error"


class DataQuality(str, Enum):
    """Quality buckets, best first."""

    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"


class TrendDirection(str, Enum):
    increasing = "increasing"
    decreasing = "decreasing"
    stable = "stable"


class AqiDirection(str, Enum):
    up = "up"
    down = "down"
    stable = "stable"


class ReportType(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    custom = "custom"


class ReportFormat(str, Enum):
    pdf = "pdf"
    csv = "csv"
    json = "json"
    xlsx = "xlsx"


class MetricType(str, Enum):
    aqi = "aqi"
    pm25 = "pm25"
    pm10 = "pm10"
    ozone = "ozone"
    no2 = "no2"
    so2 = "so2"
    co = "co"
    temperature = "temperature"
    humidity = "humidity"
    pressure = "pressure"


DEFAULT_REPORT_METRICS = [
    MetricType.aqi,
    MetricType.pm25,
    MetricType.pm10,
    MetricType.ozone,
    MetricType.no2,
    MetricType.so2,
    MetricType.co,
]


# Ingestion payloads ---------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SensorLocation(_Payload):
    latitude: float
    longitude: float
    address: Optional[str] = None


class PollutantReadingsPayload(_Payload):
    """Readings bundle accepted at ingestion; every pollutant is required."""

    aqi: float = Field(..., ge=0, le=500)
    pm25: float = Field(..., ge=0)
    pm10: float = Field(..., ge=0)
    ozone: float = Field(..., ge=0)
    no2: float = Field(..., ge=0, alias="nitrogenDioxide")
    so2: float = Field(..., ge=0, alias="sulfurDioxide")
    co: float = Field(..., ge=0, alias="carbonMonoxide")
    temperature: Optional[float] = None
    humidity: Optional[float] = Field(default=None, ge=0, le=100)
    pressure: Optional[float] = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)


class HistoricalReadingsPayload(PollutantReadingsPayload):
    """Readings bundle from historical feeds, where pollutants may be missing."""

    pm25: Optional[float] = Field(default=None, ge=0)
    pm10: Optional[float] = Field(default=None, ge=0)
    ozone: Optional[float] = Field(default=None, ge=0)
    no2: Optional[float] = Field(default=None, ge=0, alias="nitrogenDioxide")
    so2: Optional[float] = Field(default=None, ge=0, alias="sulfurDioxide")
    co: Optional[float] = Field(default=None, ge=0, alias="carbonMonoxide")


class DeviceInfoPayload(_Payload):
    status: DeviceStatus
    battery_level: Optional[float] = Field(default=None, ge=0, le=100, alias="batteryLevel")
    last_maintenance: Optional[datetime] = Field(default=None, alias="lastMaintenance")


class SensorReadingPayload(_Payload):
    sensor_id: str = Field(..., min_length=1, alias="sensorId")
    location: SensorLocation
    readings: PollutantReadingsPayload
    device_info: Optional[DeviceInfoPayload] = Field(default=None, alias="deviceInfo")

    def to_record(self) -> SensorReading:
        bundle = self.readings
        device = self.device_info
        return SensorReading(
            sensor_id=self.sensor_id,
            timestamp=bundle.timestamp,
            location=Location(
                latitude=self.location.latitude,
                longitude=self.location.longitude,
                address=self.location.address,
            ),
            readings=PollutantReadings(
                aqi=bundle.aqi,
                pm25=bundle.pm25,
                pm10=bundle.pm10,
                ozone=bundle.ozone,
                no2=bundle.no2,
                so2=bundle.so2,
                co=bundle.co,
                temperature=bundle.temperature,
                humidity=bundle.humidity,
                pressure=bundle.pressure,
            ),
            device_info=(
                DeviceInfo(
                    status=device.status.value,
                    battery_level=device.battery_level,
                    last_maintenance=device.last_maintenance,
                )
                if device is not None
                else None
            ),
        )


class HistoricalReadingPayload(SensorReadingPayload):
    readings: HistoricalReadingsPayload


# Per-sensor analytics -------------------------------------------------------


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class LocationSnapshot(_Snapshot):
    latitude: float
    longitude: float
    address: Optional[str] = None


class SensorStats(_Snapshot):
    average_aqi: int
    max_aqi: int
    min_aqi: int
    readings_count: int = Field(..., ge=1)
    last_update: datetime
    data_quality: DataQuality


class SensorTrends(_Snapshot):
    aqi_trend: TrendDirection = TrendDirection.stable
    change_rate: float = 0.0
    prediction: Optional[int] = None


class SensorAnalytics(_Snapshot):
    """Running statistics for one sensor; a new object is built per update."""

    sensor_id: str
    location: LocationSnapshot
    stats: SensorStats
    trends: SensorTrends


class IngestionOutcome(BaseModel):
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None
    details: List[str] = Field(default_factory=list)
    analytics: Optional[SensorAnalytics] = None
    deduplicated: bool = False


class SystemHealth(BaseModel):
    total_sensors: int
    active_sensors: int
    health_percentage: int
    uptime: float = Field(..., description="Seconds since the processor started.")
    queued_readings: int = Field(0, ge=0, description="Readings waiting for the drain loop.")


class CleanupResponse(BaseModel):
    removed: int = Field(..., ge=0)
    expired_reports: int = Field(0, ge=0, description="Expired report cache entries dropped.")


# Reports --------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class AreaFilter(_CamelModel):
    latitude: float
    longitude: float
    radius: float = Field(..., gt=0, description="Radius in kilometres.")


class ReportFilters(_CamelModel):
    sensor_ids: Optional[List[str]] = None
    locations: Optional[List[AreaFilter]] = None
    data_quality: Optional[List[DataQuality]] = None


class DateRange(_CamelModel):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start >= self.end:
            raise ValueError("End date must be after start date")
        return self


class ReportConfig(_CamelModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1)
    type: ReportType
    format: ReportFormat = ReportFormat.json
    metrics: List[MetricType] = Field(default_factory=lambda: list(DEFAULT_REPORT_METRICS))
    date_range: DateRange
    filters: ReportFilters = Field(default_factory=ReportFilters)
    include_charts: bool = False
    include_predictions: bool = False
    include_recommendations: bool = True


class ReportPeriod(_Snapshot):
    start: datetime
    end: datetime


class ReportSummary(_Snapshot):
    total_readings: int = 0
    average_aqi: int = 0
    max_aqi: int = 0
    min_aqi: int = 0
    data_points: int = 0
    coverage: int = Field(default=0, description="Percent of the expected hourly volume.")


class Percentiles(_Snapshot):
    p25: float = 0
    p50: float = 0
    p75: float = 0
    p95: float = 0
    p99: float = 0


class MetricStatistics(_Snapshot):
    average: float = 0
    max: float = 0
    min: float = 0
    trend: TrendDirection = TrendDirection.stable
    change_rate: float = 0.0
    percentiles: Percentiles = Field(default_factory=Percentiles)


class AqiTrend(_Snapshot):
    direction: AqiDirection = AqiDirection.stable
    magnitude: float = 0.0
    prediction: Optional[float] = None


class MonthlyPattern(_Snapshot):
    month: int = Field(..., ge=1, le=12)
    aqi: int


class HourlyPattern(_Snapshot):
    hour: int = Field(..., ge=0, le=23)
    aqi: int


class ReportTrends(_Snapshot):
    aqi_trend: AqiTrend
    seasonal_patterns: Optional[Tuple[MonthlyPattern, ...]] = None
    daily_patterns: Optional[Tuple[HourlyPattern, ...]] = None


class AlertCounts(_Snapshot):
    critical: int = 0
    warnings: int = 0
    info: int = 0


class QualityDistribution(_Snapshot):
    excellent: int = 0
    good: int = 0
    fair: int = 0
    poor: int = 0


class AnalyticsResult(_Snapshot):
    """Full report output. Cached by config signature and never mutated.

    Every nested model is frozen, sequences are tuples and ``metrics`` is a
    read-only mapping, so a cached result cannot be edited through a
    reference handed to a caller.
    """

    period: ReportPeriod
    summary: ReportSummary
    metrics: Mapping[str, MetricStatistics] = Field(default_factory=lambda: MappingProxyType({}))
    trends: ReportTrends
    alerts: AlertCounts
    recommendations: Tuple[str, ...] = ()
    data_quality: QualityDistribution

    @field_validator("metrics")
    @classmethod
    def _freeze_metrics(cls, value: Mapping[str, MetricStatistics]) -> Mapping[str, MetricStatistics]:
        return MappingProxyType(dict(value))

    @field_serializer("metrics")
    def _dump_metrics(self, value: Mapping[str, MetricStatistics]) -> Dict[str, MetricStatistics]:
        return dict(value)


class ReportOutcome(BaseModel):
    success: bool
    result: Optional[AnalyticsResult] = None
    error: Optional[str] = None
    cache_key: Optional[str] = None


class CacheStats(BaseModel):
    total_items: int
    hits: int
    misses: int
    hit_rate: float
    memory_usage: str
