"""Serialized ingestion of sensor readings into per-sensor analytics."""

from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from threading import Lock
from typing import Any, Deque, List, Optional
from uuid import uuid4

from app.schemas import DataQuality, IngestionOutcome, SensorAnalytics, SystemHealth
from datastore.reading_archive import ReadingArchive, build_default_archive
from models.records import SensorReading
from services.aggregator import SensorAggregator
from services.cache import ResultCache
from services.errors import ArchiveError, ComputationError, ReadingValidationError
from services.geo import DEFAULT_RADIUS_KM, AreaQueryEngine
from services.quality import score_reading
from services.trends import round_half_up
from services.validation import validate_reading
from settings import get_settings

logger = logging.getLogger(__name__)

_HEALTHY_BUCKETS = {DataQuality.excellent, DataQuality.good}


def ingestion_cache_key(reading: SensorReading) -> str:
    """Key readings by sensor and minute, so repeats within a minute deduplicate."""
    minute = int(reading.timestamp.timestamp() // 60)
    return f"sensor:{reading.sensor_id}:{minute}"


@dataclass
class _QueuedReading:
    ingestion_id: str
    reading: SensorReading
    cache_key: str
    future: Future[IngestionOutcome]


class ProcessorService:
    """Validates readings and funnels them through a single drain loop.

    Every aggregator mutation happens on the one executor worker, one
    queued reading at a time, so per-sensor statistics are never updated
    concurrently. Reads (area queries, health, lookups) work on snapshots.
    """

    def __init__(
        self,
        aggregator: SensorAggregator,
        cache: ResultCache[SensorAnalytics],
        archive: Optional[ReadingArchive] = None,
    ) -> None:
        self.aggregator = aggregator
        self.cache = cache
        self.archive = archive
        self.area_engine = AreaQueryEngine(aggregator)
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest-drain")
        self._queue: Deque[_QueuedReading] = deque()
        self._queue_lock = Lock()
        self._draining = False
        self._started_at = time.monotonic()

    def submit(self, raw: Any) -> Future[IngestionOutcome]:
        """Validate ``raw`` and schedule it for aggregation.

        The returned future is already resolved when validation fails or a
        result for the same sensor and minute is cached.
        """
        future: Future[IngestionOutcome] = Future()
        ingestion_id = str(uuid4())

        try:
            reading = validate_reading(raw)
        except ReadingValidationError as exc:
            logger.warning(
                "Rejected sensor reading",
                extra={"ingestion_id": ingestion_id, "error_count": len(exc.errors), "reason": str(exc)},
            )
            future.set_result(
                IngestionOutcome(success=False, id=ingestion_id, error=str(exc), details=exc.errors)
            )
            return future

        cache_key = ingestion_cache_key(reading)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(
                "Reading deduplicated from cache",
                extra={"sensor_id": reading.sensor_id, "cache_key": cache_key},
            )
            future.set_result(
                IngestionOutcome(success=True, id=ingestion_id, analytics=cached, deduplicated=True)
            )
            return future

        item = _QueuedReading(
            ingestion_id=ingestion_id, reading=reading, cache_key=cache_key, future=future
        )
        with self._queue_lock:
            self._queue.append(item)
            if self._draining:
                return future
            self._draining = True

        try:
            self.executor.submit(self._drain)
        except RuntimeError:
            # Executor already shut down.
            with self._queue_lock:
                self._draining = False
                if item in self._queue:
                    self._queue.remove(item)
            raise
        return future

    def process(self, raw: Any, timeout: Optional[float] = None) -> IngestionOutcome:
        """Submit a reading and block until it has been aggregated."""
        return self.submit(raw).result(timeout=timeout)

    def _drain(self) -> None:
        while True:
            with self._queue_lock:
                if not self._queue:
                    self._draining = False
                    return
                item = self._queue.popleft()

            if not item.future.set_running_or_notify_cancel():
                continue
            try:
                outcome = self._process_item(item)
            except Exception as exc:
                # Surface to the submitter; the loop keeps draining.
                item.future.set_exception(exc)
                continue
            item.future.set_result(outcome)

    def _process_item(self, item: _QueuedReading) -> IngestionOutcome:
        start_time = time.perf_counter()
        reading = item.reading
        context = {"sensor_id": reading.sensor_id, "ingestion_id": item.ingestion_id}

        # A failed archive write must leave the aggregator and cache untouched.
        if self.archive is not None:
            try:
                self.archive.append(reading)
            except ArchiveError as exc:
                logger.error("Archiving failed", extra={**context, "reason": str(exc)})
                return IngestionOutcome(
                    success=False, id=item.ingestion_id, error=f"Failed to archive reading: {exc}"
                )

        try:
            quality = score_reading(reading)
            analytics = self.aggregator.update(reading.sensor_id, reading, quality)
        except Exception as exc:
            error = ComputationError(f"Failed to aggregate reading: {exc}")
            logger.exception("Aggregation failed", extra=context)
            return IngestionOutcome(success=False, id=item.ingestion_id, error=str(error))

        self.cache.set(item.cache_key, analytics)

        logger.debug(
            "Reading aggregated",
            extra={
                "sensor_id": reading.sensor_id,
                "ingestion_id": item.ingestion_id,
                "processing_ms": (time.perf_counter() - start_time) * 1000,
            },
        )
        return IngestionOutcome(success=True, id=item.ingestion_id, analytics=analytics)

    def get_sensor_analytics(self, sensor_id: str) -> Optional[SensorAnalytics]:
        return self.aggregator.get(sensor_id)

    def query_area(
        self, latitude: float, longitude: float, radius_km: float = DEFAULT_RADIUS_KM
    ) -> List[SensorAnalytics]:
        return self.area_engine.query_area(latitude, longitude, radius_km)

    def get_system_health(self) -> SystemHealth:
        sensors = self.aggregator.snapshot()
        total = len(sensors)
        active = sum(1 for analytics in sensors if analytics.stats.data_quality in _HEALTHY_BUCKETS)
        return SystemHealth(
            total_sensors=total,
            active_sensors=active,
            health_percentage=round_half_up(active / total * 100) if total else 0,
            uptime=round(time.monotonic() - self._started_at, 3),
            queued_readings=self.pending(),
        )

    def cleanup_old_data(self, older_than_days: int = 7) -> int:
        """Evict sensors not updated within ``older_than_days`` and reset the cache."""
        removed = self.aggregator.cleanup(timedelta(days=older_than_days))
        self.cache.clear()
        logger.info(
            "Retention sweep finished",
            extra={"reading_count": len(removed), "reason": f"older_than_days={older_than_days}"},
        )
        return len(removed)

    def pending(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        with self._queue_lock:
            abandoned = list(self._queue)
            self._queue.clear()
        for item in abandoned:
            item.future.cancel()
        self.executor.shutdown(wait=False, cancel_futures=True)


@lru_cache
def build_default_processor() -> ProcessorService:
    """Factory that wires the processor from settings."""
    settings = get_settings()
    cache: ResultCache[SensorAnalytics] = ResultCache(
        ttl_seconds=settings.ingest_cache_ttl_seconds,
        max_entries=settings.ingest_cache_max_entries,
    )
    return ProcessorService(
        aggregator=SensorAggregator(),
        cache=cache,
        archive=build_default_archive(),
    )
