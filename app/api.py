"""HTTP route definitions for the service."""

from __future__ import annotations

import asyncio
import re
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from fastapi.concurrency import run_in_threadpool

from app.schemas import (
    AnalyticsResult,
    CacheStats,
    CleanupResponse,
    IngestionOutcome,
    ReportConfig,
    ReportFormat,
    SensorAnalytics,
    SystemHealth,
)
from services.analytics import (
    PLACEHOLDER_EXPORTS,
    AnalyticsService,
    build_default_analytics_service,
    export_analytics,
    is_export_supported,
)
from services.geo import DEFAULT_RADIUS_KM
from services.processor import ProcessorService, build_default_processor
from settings import get_settings

router = APIRouter()

_MEDIA_TYPES = {
    ReportFormat.json: "application/json",
    ReportFormat.csv: "text/csv",
    ReportFormat.pdf: "application/pdf",
    ReportFormat.xlsx: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def get_processor() -> ProcessorService:
    return build_default_processor()


def get_analytics_service() -> AnalyticsService:
    return build_default_analytics_service()


def _report_filename(name: str, export_format: ReportFormat) -> str:
    slug = re.sub(r"[^a-z0-9]", "_", name.lower())
    return f"{slug}_{date.today().isoformat()}.{export_format.value}"


@router.post(
    "/readings",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestionOutcome,
    summary="Ingest a raw sensor reading and return the sensor's updated analytics.",
)
async def ingest_reading(
    payload: Dict[str, Any] = Body(..., description="Raw sensor reading."),
    processor: ProcessorService = Depends(get_processor),
) -> IngestionOutcome:
    outcome = await asyncio.wrap_future(processor.submit(payload))
    if not outcome.success and outcome.details:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Validation failed", "details": outcome.details},
        )
    if not outcome.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=outcome.error,
        )
    return outcome


@router.get(
    "/sensors/area",
    response_model=List[SensorAnalytics],
    summary="List sensors within a radius of a point.",
)
async def area_analytics(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(DEFAULT_RADIUS_KM, gt=0),
    processor: ProcessorService = Depends(get_processor),
) -> List[SensorAnalytics]:
    return processor.query_area(latitude, longitude, radius_km)


@router.get(
    "/sensors/{sensor_id}/analytics",
    response_model=SensorAnalytics,
    summary="Fetch the running analytics of one sensor.",
)
async def sensor_analytics(
    sensor_id: str,
    processor: ProcessorService = Depends(get_processor),
) -> SensorAnalytics:
    analytics = processor.get_sensor_analytics(sensor_id)
    if analytics is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No analytics recorded for sensor {sensor_id!r}.",
        )
    return analytics


@router.get("/system/health", response_model=SystemHealth, summary="Sensor fleet health.")
async def system_health(
    processor: ProcessorService = Depends(get_processor),
) -> SystemHealth:
    return processor.get_system_health()


@router.post(
    "/maintenance/cleanup",
    response_model=CleanupResponse,
    summary="Evict sensors that have not reported recently and expired reports.",
)
async def cleanup(
    older_than_days: Optional[int] = Query(None, gt=0, description="Defaults to SENSOR_RETENTION_DAYS."),
    processor: ProcessorService = Depends(get_processor),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> CleanupResponse:
    days = older_than_days or get_settings().retention_days
    return CleanupResponse(
        removed=processor.cleanup_old_data(days),
        expired_reports=analytics.purge_expired(),
    )


@router.post(
    "/reports",
    summary="Generate an analytics report and return it in the requested format.",
    responses={501: {"description": "Export format not implemented."}},
)
async def create_report(
    config: ReportConfig,
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Response:
    if not is_export_supported(config.format):
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail=PLACEHOLDER_EXPORTS[config.format],
        )

    outcome = await run_in_threadpool(analytics.generate_report, config)
    if not outcome.success or outcome.result is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=outcome.error or "Report generation failed.",
        )

    filename = _report_filename(config.name, config.format)
    return Response(
        content=export_analytics(outcome.result, config.format),
        media_type=_MEDIA_TYPES[config.format],
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Report-Cache-Key": outcome.cache_key or "",
        },
    )


@router.get("/reports/cache-stats", response_model=CacheStats, summary="Report cache statistics.")
async def report_cache_stats(
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> CacheStats:
    return analytics.get_cache_stats()


@router.get(
    "/reports/cache/{cache_key}",
    response_model=AnalyticsResult,
    summary="Fetch a cached report by its cache key.",
)
async def cached_report(
    cache_key: str,
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult:
    result = analytics.get_cached_analytics(cache_key)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No cached report for key {cache_key!r}.",
        )
    return result


@router.delete(
    "/reports/cache",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Drop every cached report.",
)
async def clear_report_cache(
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Response:
    analytics.clear_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
