"""Error taxonomy for the analytics pipeline."""

from __future__ import annotations

from typing import Sequence


class PipelineError(Exception):
    """Base class for errors raised by pipeline components."""


class ReadingValidationError(PipelineError):
    """A raw reading failed schema or range checks."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid sensor reading.")


class ComputationError(PipelineError):
    """Aggregation or report computation failed on otherwise valid input."""


class UnsupportedFormatError(PipelineError):
    """An export format has no serializer."""

    def __init__(self, export_format: str) -> None:
        self.export_format = export_format
        super().__init__(f"Unsupported export format: {export_format}")


class UpstreamError(PipelineError):
    """An external data source timed out or answered with a failure."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class ArchiveError(PipelineError):
    """An ingested reading could not be written to the archive file."""
