"""Schema validation for raw sensor readings."""

from __future__ import annotations

from typing import Any, List, Type

from pydantic import ValidationError

from app.schemas import HistoricalReadingPayload, SensorReadingPayload
from models.records import SensorReading
from services.errors import ReadingValidationError


def _describe(exc: ValidationError) -> List[str]:
    messages: List[str] = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "reading"
        messages.append(f"{field}: {error.get('msg', 'invalid value')}")
    return messages


def _validate(raw: Any, schema: Type[SensorReadingPayload]) -> SensorReading:
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            payload = schema.model_validate_json(raw)
        except ValidationError as exc:
            raise ReadingValidationError(_describe(exc)) from exc
        return payload.to_record()

    if not isinstance(raw, dict):
        raise ReadingValidationError(["reading: expected an object"])

    try:
        payload = schema.model_validate(raw)
    except ValidationError as exc:
        raise ReadingValidationError(_describe(exc)) from exc
    return payload.to_record()


def validate_reading(raw: Any) -> SensorReading:
    """Validate an ingestion payload, rejecting the whole reading on any error.

    Accepts a mapping or a JSON document. Raises ``ReadingValidationError``
    listing every failing field.
    """
    return _validate(raw, SensorReadingPayload)


def parse_historical_reading(raw: Any) -> SensorReading:
    """Validate a reading from a historical feed; pollutant fields may be absent."""
    return _validate(raw, HistoricalReadingPayload)
