"""Report generation over historical readings, with a result cache."""

from __future__ import annotations

import csv
import io
import logging
import math
import time
from collections import defaultdict
from datetime import datetime
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Sequence

from app.schemas import (
    AlertCounts,
    AnalyticsResult,
    AqiDirection,
    AqiTrend,
    CacheStats,
    DataQuality,
    DeviceStatus,
    HourlyPattern,
    MetricStatistics,
    MetricType,
    MonthlyPattern,
    Percentiles,
    QualityDistribution,
    ReportConfig,
    ReportFilters,
    ReportFormat,
    ReportOutcome,
    ReportPeriod,
    ReportSummary,
    ReportTrends,
    TrendDirection,
)
from models.records import SensorReading
from services.cache import ResultCache, signature_key
from services.errors import ComputationError, UnsupportedFormatError, UpstreamError
from services.geo import within_radius
from services.historical import HistoricalDataSource, HttpHistoricalSource, build_default_source
from services.quality import score_reading
from services.trends import half_split_trend, round_half_up
from settings import get_settings

logger = logging.getLogger(__name__)

CRITICAL_AQI = 200
WARNING_AQI = 100
PERCENTILE_RANKS = {"p25": 0.25, "p50": 0.5, "p75": 0.75, "p95": 0.95, "p99": 0.99}
PREDICTION_FACTOR = 5

PLACEHOLDER_EXPORTS = {
    ReportFormat.pdf: "PDF export is not implemented.",
    ReportFormat.xlsx: "Excel export is not implemented.",
}

CSV_HEADERS = ["Metric", "Average", "Max", "Min", "P25", "P50", "P75", "P95", "P99", "Trend", "Change Rate"]

_DIRECTIONS = {
    TrendDirection.increasing: AqiDirection.up,
    TrendDirection.decreasing: AqiDirection.down,
    TrendDirection.stable: AqiDirection.stable,
}


def report_cache_key(config: ReportConfig) -> str:
    """Signature of everything that changes a report's content.

    ``id``, ``name``, ``format`` and ``include_charts`` do not affect the
    computed result and are left out.
    """
    payload = {
        "type": config.type.value,
        "start": config.date_range.start.isoformat(),
        "end": config.date_range.end.isoformat(),
        "filters": config.filters.model_dump(mode="json", exclude_none=True),
        "metrics": sorted({metric.value for metric in config.metrics}),
        "include_predictions": config.include_predictions,
        "include_recommendations": config.include_recommendations,
    }
    return signature_key("analytics", payload)


def apply_filters(readings: Iterable[SensorReading], filters: ReportFilters) -> List[SensorReading]:
    filtered = list(readings)

    if filters.sensor_ids:
        allowed = set(filters.sensor_ids)
        filtered = [reading for reading in filtered if reading.sensor_id in allowed]

    if filters.locations:
        areas = filters.locations
        filtered = [
            reading
            for reading in filtered
            if any(
                within_radius(
                    reading.location.latitude,
                    reading.location.longitude,
                    area.latitude,
                    area.longitude,
                    area.radius,
                )
                for area in areas
            )
        ]

    if filters.data_quality:
        buckets = set(filters.data_quality)
        filtered = [reading for reading in filtered if score_reading(reading) in buckets]

    return filtered


def calculate_summary(
    readings: Sequence[SensorReading], start: datetime, end: datetime
) -> ReportSummary:
    if not readings:
        return ReportSummary()

    aqi_values = [reading.readings.aqi for reading in readings]
    hours = max(1, math.ceil((end - start).total_seconds() / 3600))
    sensors = len({reading.sensor_id for reading in readings})
    # One reading per sensor per hour is the nominal volume.
    coverage = min(100, round_half_up(len(readings) / (hours * sensors) * 100))

    return ReportSummary(
        total_readings=len(readings),
        average_aqi=round_half_up(sum(aqi_values) / len(aqi_values)),
        max_aqi=round_half_up(max(aqi_values)),
        min_aqi=round_half_up(min(aqi_values)),
        data_points=len(readings),
        coverage=coverage,
    )


def _percentiles(sorted_values: Sequence[float]) -> Percentiles:
    count = len(sorted_values)
    return Percentiles(
        **{name: sorted_values[math.floor(count * rank)] for name, rank in PERCENTILE_RANKS.items()}
    )


def calculate_metrics(
    readings: Sequence[SensorReading], requested: Iterable[MetricType]
) -> Dict[str, MetricStatistics]:
    metrics: Dict[str, MetricStatistics] = {}
    for metric in requested:
        values = [
            value for value in (reading.metric(metric.value) for reading in readings) if value is not None
        ]
        if not values:
            metrics[metric.value] = MetricStatistics()
            continue

        trend = half_split_trend(values)
        metrics[metric.value] = MetricStatistics(
            average=round(sum(values) / len(values), 2),
            max=max(values),
            min=min(values),
            trend=trend.direction,
            change_rate=trend.change_rate,
            percentiles=_percentiles(sorted(values)),
        )
    return metrics


def _bucketed_means(pairs: Iterable[tuple[int, float]]) -> Dict[int, int]:
    sums: Dict[int, float] = defaultdict(float)
    counts: Dict[int, int] = defaultdict(int)
    for bucket, value in pairs:
        sums[bucket] += value
        counts[bucket] += 1
    return {bucket: round_half_up(sums[bucket] / counts[bucket]) for bucket in sums}


def calculate_trends(readings: Sequence[SensorReading], include_predictions: bool) -> ReportTrends:
    aqi_values = [reading.readings.aqi for reading in readings]
    estimate = half_split_trend(aqi_values)

    prediction: Optional[float] = None
    if include_predictions and aqi_values:
        prediction = round(aqi_values[-1] + estimate.change_rate * PREDICTION_FACTOR, 2)

    monthly = _bucketed_means((r.timestamp.month, r.readings.aqi) for r in readings)
    hourly = _bucketed_means((r.timestamp.hour, r.readings.aqi) for r in readings)

    return ReportTrends(
        aqi_trend=AqiTrend(
            direction=_DIRECTIONS[estimate.direction],
            magnitude=abs(estimate.change_rate),
            prediction=prediction,
        ),
        seasonal_patterns=[
            MonthlyPattern(month=month, aqi=monthly.get(month, 0)) for month in range(1, 13)
        ],
        daily_patterns=[HourlyPattern(hour=hour, aqi=hourly.get(hour, 0)) for hour in range(24)],
    )


def count_alerts(readings: Iterable[SensorReading]) -> AlertCounts:
    critical = warnings = info = 0
    for reading in readings:
        aqi = reading.readings.aqi
        if aqi > CRITICAL_AQI:
            critical += 1
        elif aqi > WARNING_AQI:
            warnings += 1
        if reading.device_info and reading.device_info.status == DeviceStatus.maintenance.value:
            info += 1
    return AlertCounts(critical=critical, warnings=warnings, info=info)


def build_recommendations(
    summary: ReportSummary, trends: ReportTrends, alerts: AlertCounts
) -> List[str]:
    recommendations: List[str] = []
    if summary.average_aqi > WARNING_AQI:
        recommendations.append(
            "Consider implementing air quality improvement measures in high-pollution areas"
        )
    if trends.aqi_trend.direction is AqiDirection.up and trends.aqi_trend.magnitude > 10:
        recommendations.append(
            "Air quality is deteriorating - investigate pollution sources and implement "
            "mitigation strategies"
        )
    if alerts.critical > 0:
        recommendations.append(
            "Critical air quality levels detected - activate emergency response protocols"
        )
    if alerts.warnings > 0:
        recommendations.append(
            "Multiple sensors showing elevated pollution levels - monitor closely and issue "
            "public advisories"
        )
    if alerts.info > 0:
        recommendations.append("Schedule maintenance for sensors showing maintenance status")
    return recommendations


def quality_distribution(readings: Iterable[SensorReading]) -> QualityDistribution:
    counts = {bucket: 0 for bucket in DataQuality}
    for reading in readings:
        counts[score_reading(reading)] += 1
    return QualityDistribution(**{bucket.value: count for bucket, count in counts.items()})


def is_export_supported(export_format: ReportFormat | str) -> bool:
    try:
        return ReportFormat(export_format) not in PLACEHOLDER_EXPORTS
    except ValueError:
        return False


def export_analytics(result: AnalyticsResult, export_format: ReportFormat | str) -> str:
    """Serialize a report as JSON or CSV.

    PDF and XLSX return a fixed "not implemented" message instead of a
    document; unknown formats raise :class:`UnsupportedFormatError`.
    """
    try:
        target = ReportFormat(export_format)
    except ValueError as exc:
        raise UnsupportedFormatError(str(export_format)) from exc

    if target is ReportFormat.json:
        return result.model_dump_json(indent=2)
    if target is ReportFormat.csv:
        return _export_csv(result)
    return PLACEHOLDER_EXPORTS[target]


def _export_csv(result: AnalyticsResult) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for metric, stats in result.metrics.items():
        percentiles = stats.percentiles
        writer.writerow(
            [
                metric,
                stats.average,
                stats.max,
                stats.min,
                percentiles.p25,
                percentiles.p50,
                percentiles.p75,
                percentiles.p95,
                percentiles.p99,
                stats.trend.value,
                stats.change_rate,
            ]
        )
    return buffer.getvalue().rstrip("\n")


class AnalyticsService:
    """Computes reports from a historical source and caches them by signature."""

    def __init__(self, source: HistoricalDataSource, cache: ResultCache[AnalyticsResult]) -> None:
        self.source = source
        self.cache = cache

    def generate_report(self, config: ReportConfig) -> ReportOutcome:
        cache_key = report_cache_key(config)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(
                "Serving cached report",
                extra={"cache_key": cache_key, "report_type": config.type.value},
            )
            return ReportOutcome(success=True, result=cached, cache_key=cache_key)

        start_time = time.perf_counter()
        try:
            result = self._calculate_analytics(config)
        except UpstreamError as exc:
            logger.error(
                "Historical data unavailable",
                extra={"report_type": config.type.value, "reason": str(exc)},
            )
            return ReportOutcome(success=False, error=str(exc))
        except Exception as exc:  # pragma: no cover
            error = ComputationError(f"Report computation failed: {exc}")
            logger.exception("Report computation failed", extra={"report_type": config.type.value})
            return ReportOutcome(success=False, error=str(error))

        self.cache.set(cache_key, result)
        logger.info(
            "Report generated",
            extra={
                "report_type": config.type.value,
                "cache_key": cache_key,
                "reading_count": result.summary.total_readings,
                "processing_ms": (time.perf_counter() - start_time) * 1000,
            },
        )
        return ReportOutcome(success=True, result=result, cache_key=cache_key)

    def _calculate_analytics(self, config: ReportConfig) -> AnalyticsResult:
        start = config.date_range.start
        end = config.date_range.end

        readings = [
            reading
            for reading in self.source.fetch_readings(start, end)
            if start <= reading.timestamp <= end
        ]
        filtered = sorted(apply_filters(readings, config.filters), key=lambda r: r.timestamp)

        summary = calculate_summary(filtered, start, end)
        trends = calculate_trends(filtered, config.include_predictions)
        alerts = count_alerts(filtered)
        recommendations = (
            build_recommendations(summary, trends, alerts) if config.include_recommendations else []
        )

        return AnalyticsResult(
            period=ReportPeriod(start=start, end=end),
            summary=summary,
            metrics=calculate_metrics(filtered, config.metrics),
            trends=trends,
            alerts=alerts,
            recommendations=recommendations,
            data_quality=quality_distribution(filtered),
        )

    def get_cached_analytics(self, cache_key: str) -> Optional[AnalyticsResult]:
        return self.cache.get(cache_key)

    def clear_cache(self) -> None:
        self.cache.clear()

    def purge_expired(self) -> int:
        """Drop expired reports nobody has read since they went stale."""
        removed = self.cache.purge_stale()
        if removed:
            logger.info("Purged expired reports", extra={"status": f"removed={removed}"})
        return removed

    def close(self) -> None:
        if isinstance(self.source, HttpHistoricalSource):
            self.source.close()

    def get_cache_stats(self) -> CacheStats:
        stats = self.cache.stats()
        return CacheStats(
            total_items=stats.size,
            hits=stats.hits,
            misses=stats.misses,
            hit_rate=stats.hit_rate,
            memory_usage=stats.memory_usage,
        )


@lru_cache
def build_default_analytics_service() -> AnalyticsService:
    """Factory that wires the report engine from settings."""
    settings = get_settings()
    cache: ResultCache[AnalyticsResult] = ResultCache(
        ttl_seconds=settings.report_cache_ttl_seconds,
        max_entries=settings.report_cache_max_entries,
    )
    return AnalyticsService(source=build_default_source(), cache=cache)
