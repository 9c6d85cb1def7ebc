"""Historical reading sources consumed by the report engine."""

from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, List, Optional, Protocol

import httpx

from app.schemas import DeviceStatus
from datastore.reading_archive import build_default_archive
from models.records import DeviceInfo, Location, PollutantReadings, SensorReading
from services.errors import ReadingValidationError, UpstreamError
from services.validation import parse_historical_reading
from settings import get_settings

logger = logging.getLogger(__name__)


class HistoricalDataSource(Protocol):
    def fetch_readings(self, start: datetime, end: datetime) -> List[SensorReading]:
        ...


class SimulatedHistoricalSource:
    """Deterministic stand-in producing one synthetic reading per hour.

    The same ``(seed, start, end)`` always yields the same readings.
    """

    MAX_READINGS = 1000

    def __init__(
        self,
        seed: int = 0,
        sensor_count: int = 100,
        center: tuple[float, float] = (24.7136, 46.6753),
    ) -> None:
        self.seed = seed
        self.sensor_count = sensor_count
        self.center = center

    def fetch_readings(self, start: datetime, end: datetime) -> List[SensorReading]:
        rng = random.Random(f"{self.seed}:{start.isoformat()}:{end.isoformat()}")
        hours = math.ceil((end - start).total_seconds() / 3600)
        readings: List[SensorReading] = []
        for index in range(min(max(hours, 0), self.MAX_READINGS)):
            timestamp = start + timedelta(hours=index)
            status = DeviceStatus.active if rng.random() > 0.1 else DeviceStatus.maintenance
            readings.append(
                SensorReading(
                    sensor_id=f"sensor-{rng.randrange(self.sensor_count)}",
                    timestamp=timestamp,
                    location=Location(
                        latitude=self.center[0] + (rng.random() - 0.5) * 0.1,
                        longitude=self.center[1] + (rng.random() - 0.5) * 0.1,
                    ),
                    readings=PollutantReadings(
                        aqi=float(rng.randrange(50, 250)),
                        pm25=rng.random() * 50 + 10,
                        pm10=rng.random() * 100 + 20,
                        ozone=rng.random() * 100 + 20,
                        no2=rng.random() * 50 + 5,
                        so2=rng.random() * 20 + 1,
                        co=rng.random() * 10 + 0.5,
                        temperature=rng.random() * 20 + 20,
                        humidity=rng.random() * 40 + 30,
                        pressure=rng.random() * 50 + 980,
                    ),
                    device_info=DeviceInfo(status=status.value, battery_level=rng.random() * 100),
                )
            )
        return readings


class HttpHistoricalSource:
    """Fetch historical readings from ``GET {base_url}/readings``.

    Timeouts, transport failures and 5xx answers are retried up to
    ``retries`` extra times before surfacing as :class:`UpstreamError`.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        retries: int = 2,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def fetch_readings(self, start: datetime, end: datetime) -> List[SensorReading]:
        payload = self._get_json({"start": start.isoformat(), "end": end.isoformat()})
        rows = payload.get("readings", []) if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            raise UpstreamError("Historical source returned an unexpected payload.", retryable=False)

        readings: List[SensorReading] = []
        skipped = 0
        for row in rows:
            try:
                readings.append(parse_historical_reading(row))
            except ReadingValidationError:
                skipped += 1
        if skipped:
            logger.warning(
                "Skipped malformed historical readings",
                extra={"error_count": skipped, "reading_count": len(readings)},
            )
        return sorted(readings, key=lambda reading: reading.timestamp)

    def _get_json(self, params: dict[str, str]) -> Any:
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._client.get("/readings", params=params)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException:
                error = UpstreamError(f"Historical source timed out after {self.timeout}s.")
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                error = UpstreamError(
                    f"Historical source responded with status {status}.",
                    retryable=status >= 500,
                )
                if not error.retryable:
                    raise error from exc
            except httpx.HTTPError as exc:
                error = UpstreamError(f"Historical source request failed: {exc}")
            except ValueError as exc:
                raise UpstreamError("Historical source returned invalid JSON.", retryable=False) from exc

            if attempt == attempts:
                raise error
            logger.warning(
                "Historical fetch attempt failed",
                extra={"reason": str(error), "status": f"attempt {attempt}"},
            )


@lru_cache
def build_default_source() -> HistoricalDataSource:
    """Source selected by ``HISTORICAL_SOURCE``; the archive shares ingestion's store."""
    settings = get_settings()
    if settings.historical_source == "simulated":
        return SimulatedHistoricalSource()
    if settings.historical_source == "http":
        if not settings.historical_source_url:
            raise ValueError("HISTORICAL_SOURCE_URL must be set when HISTORICAL_SOURCE=http.")
        return HttpHistoricalSource(
            base_url=settings.historical_source_url,
            timeout=settings.historical_source_timeout,
            retries=settings.historical_source_retries,
        )
    return build_default_archive()
