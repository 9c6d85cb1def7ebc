"""Per-sensor running statistics and trend detection."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Deque, Dict, List, Optional

from app.schemas import (
    DataQuality,
    LocationSnapshot,
    SensorAnalytics,
    SensorStats,
    SensorTrends,
)
from models.records import SensorReading
from services.trends import endpoint_trend, linear_projection, round_half_up

logger = logging.getLogger(__name__)


class SensorAggregator:
    """Owns the ``SensorAnalytics`` of every known sensor.

    Each update builds a fresh snapshot; stored snapshots are never patched,
    so readers can hold on to them safely. Only the ingestion drain loop is
    expected to call :meth:`update`.
    """

    HISTORY_SIZE = 5
    MIN_TREND_HISTORY = 3

    def __init__(self) -> None:
        self._analytics: Dict[str, SensorAnalytics] = {}
        self._history: Dict[str, Deque[SensorAnalytics]] = {}
        self._lock = Lock()

    def update(
        self, sensor_id: str, reading: SensorReading, quality: DataQuality
    ) -> SensorAnalytics:
        aqi = reading.readings.aqi
        rounded = round_half_up(aqi)

        with self._lock:
            existing = self._analytics.get(sensor_id)
            history = self._history.setdefault(sensor_id, deque(maxlen=self.HISTORY_SIZE))

            if existing is None:
                stats = SensorStats(
                    average_aqi=rounded,
                    max_aqi=rounded,
                    min_aqi=rounded,
                    readings_count=1,
                    last_update=reading.timestamp,
                    data_quality=quality,
                )
            else:
                previous = existing.stats
                total = previous.readings_count + 1
                # Rounded at every step, so long sequences drift from the true mean.
                stats = SensorStats(
                    average_aqi=round_half_up(
                        (previous.average_aqi * previous.readings_count + aqi) / total
                    ),
                    max_aqi=max(previous.max_aqi, rounded),
                    min_aqi=min(previous.min_aqi, rounded),
                    readings_count=total,
                    last_update=reading.timestamp,
                    data_quality=quality,
                )

            analytics = SensorAnalytics(
                sensor_id=sensor_id,
                location=LocationSnapshot(
                    latitude=reading.location.latitude,
                    longitude=reading.location.longitude,
                    address=reading.location.address,
                ),
                stats=stats,
                trends=self._calculate_trends(history),
            )
            self._analytics[sensor_id] = analytics
            history.append(analytics)

        return analytics

    def _calculate_trends(self, history: Deque[SensorAnalytics]) -> SensorTrends:
        if len(history) < self.MIN_TREND_HISTORY:
            return SensorTrends()

        window = sorted(history, key=lambda snapshot: snapshot.stats.last_update)
        values = [snapshot.stats.average_aqi for snapshot in window[-self.HISTORY_SIZE:]]
        estimate = endpoint_trend(values)
        return SensorTrends(
            aqi_trend=estimate.direction,
            change_rate=estimate.change_rate,
            prediction=linear_projection(values[-1], estimate.change),
        )

    def get(self, sensor_id: str) -> Optional[SensorAnalytics]:
        with self._lock:
            return self._analytics.get(sensor_id)

    def snapshot(self) -> List[SensorAnalytics]:
        """Return the current analytics of every sensor."""
        with self._lock:
            return list(self._analytics.values())

    def cleanup(self, older_than: timedelta, now: Optional[datetime] = None) -> List[str]:
        """Drop sensors whose last update is older than ``older_than``."""
        cutoff = (now or datetime.now(timezone.utc)) - older_than
        with self._lock:
            stale = [
                sensor_id
                for sensor_id, analytics in self._analytics.items()
                if analytics.stats.last_update < cutoff
            ]
            for sensor_id in stale:
                del self._analytics[sensor_id]
                self._history.pop(sensor_id, None)

        if stale:
            logger.info("Evicted stale sensors", extra={"reading_count": len(stale)})
        return stale

    def __len__(self) -> int:
        with self._lock:
            return len(self._analytics)
