"""Archive of ingested sensor readings, persisted as JSON lines."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from models.records import SensorReading
from services.errors import ArchiveError, ReadingValidationError
from services.validation import parse_historical_reading
from settings import get_settings

logger = logging.getLogger(__name__)


def _to_payload(reading: SensorReading) -> Dict[str, Any]:
    payload = asdict(reading)
    payload["readings"]["timestamp"] = reading.timestamp.isoformat()
    del payload["timestamp"]
    device = payload.get("device_info")
    if device and device.get("last_maintenance") is not None:
        device["last_maintenance"] = device["last_maintenance"].isoformat()
    return payload


def _to_line(reading: SensorReading) -> str:
    return json.dumps(_to_payload(reading), separators=(",", ":")) + "\n"


class ReadingArchive:
    """Bounded store of ingested readings, serving as the default report source.

    With a ``persistence_path`` every reading is appended to the file as one
    JSON line. The file is rewritten with only the retained readings once it
    holds more than ``COMPACT_FACTOR`` times ``max_readings`` lines.
    """

    COMPACT_FACTOR = 2

    def __init__(self, max_readings: int = 10000, persistence_path: Optional[Path] = None) -> None:
        self.max_readings = max_readings
        self._readings: List[SensorReading] = []
        self.persistence_path = persistence_path
        self._lines_on_disk = 0
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append(self, reading: SensorReading) -> None:
        """Record ``reading``; raises :class:`ArchiveError` if the file write fails."""
        with self._lock:
            if self.persistence_path:
                self._write_line(reading)
            self._readings.append(reading)
            if len(self._readings) > self.max_readings:
                del self._readings[: len(self._readings) - self.max_readings]
            if self._lines_on_disk > self.COMPACT_FACTOR * self.max_readings:
                self._compact()

    def fetch_readings(self, start: datetime, end: datetime) -> List[SensorReading]:
        """Return readings with ``start <= timestamp <= end`` in time order."""
        with self._lock:
            selected = [r for r in self._readings if start <= r.timestamp <= end]
        return sorted(selected, key=lambda reading: reading.timestamp)

    def __len__(self) -> int:
        with self._lock:
            return len(self._readings)

    def _write_line(self, reading: SensorReading) -> None:
        try:
            with self.persistence_path.open("a", encoding="utf-8") as handle:
                handle.write(_to_line(reading))
        except OSError as exc:
            raise ArchiveError(f"Could not write {self.persistence_path}: {exc}") from exc
        self._lines_on_disk += 1

    def _compact(self) -> None:
        scratch = self.persistence_path.with_name(self.persistence_path.name + ".tmp")
        try:
            scratch.write_text("".join(_to_line(r) for r in self._readings), encoding="utf-8")
            scratch.replace(self.persistence_path)
        except OSError as exc:
            # The appended line is already on disk; compaction is retried next append.
            logger.warning("Archive compaction failed", extra={"reason": str(exc)})
            return
        self._lines_on_disk = len(self._readings)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            lines = self.persistence_path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            logger.warning(
                "Ignoring unreadable reading archive",
                extra={"reason": str(self.persistence_path)},
            )
            return

        rows = [line for line in lines if line.strip()]
        self._lines_on_disk = len(rows)
        skipped = 0
        for line in rows[-self.max_readings:]:
            try:
                self._readings.append(parse_historical_reading(json.loads(line)))
            except (json.JSONDecodeError, ReadingValidationError):
                skipped += 1
        if skipped:
            logger.warning(
                "Skipped unreadable archive lines",
                extra={"error_count": skipped, "reading_count": len(self._readings)},
            )


@lru_cache
def build_default_archive(
    path: Optional[str] = None,
    max_readings: Optional[int] = None,
) -> ReadingArchive:
    settings = get_settings()
    archive_path = settings.archive_path if path is None else path
    capacity = settings.archive_max_readings if max_readings is None else max_readings
    persistence = Path(archive_path) if archive_path else None
    return ReadingArchive(max_readings=capacity, persistence_path=persistence)
