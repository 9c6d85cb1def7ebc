"""Great-circle distance and area queries over per-sensor analytics."""

from __future__ import annotations

import math
from typing import List

from app.schemas import SensorAnalytics
from services.aggregator import SensorAggregator

EARTH_RADIUS_KM = 6371.0
DEFAULT_RADIUS_KM = 10.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def within_radius(
    latitude: float, longitude: float, center_lat: float, center_lon: float, radius_km: float
) -> bool:
    return haversine_km(center_lat, center_lon, latitude, longitude) <= radius_km


class AreaQueryEngine:
    """Read-only view of the aggregator filtered by distance from a point."""

    def __init__(self, aggregator: SensorAggregator) -> None:
        self.aggregator = aggregator

    def query_area(
        self, latitude: float, longitude: float, radius_km: float = DEFAULT_RADIUS_KM
    ) -> List[SensorAnalytics]:
        return [
            analytics
            for analytics in self.aggregator.snapshot()
            if within_radius(
                analytics.location.latitude,
                analytics.location.longitude,
                latitude,
                longitude,
                radius_km,
            )
        ]
