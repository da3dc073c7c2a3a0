"""Error taxonomy shared by ingestion, storage and the persistence loop."""

from __future__ import annotations

from enum import Enum


class RejectionReason(str, Enum):
    """Why a single reading was refused at the door."""

    bad_identifier_format = "bad-identifier-format"
    non_numeric_value = "non-numeric-value"
    out_of_range = "out-of-range"


class TelemetryError(Exception):
    """Base class for recoverable telemetry errors."""


class ValidationError(TelemetryError):
    """A reading or valve report failed identity or range validation."""

    def __init__(self, reason: RejectionReason | str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or str(getattr(reason, "value", reason)))


class EmptyPayloadError(TelemetryError):
    """Raised when a batch submission carries no entries at all."""


class StorageError(TelemetryError):
    """Raised when the durable store cannot persist or load a record."""


class ConfigurationError(TelemetryError):
    """Raised when a logger reconfiguration request cannot be applied."""
