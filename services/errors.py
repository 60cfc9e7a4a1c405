"""Typed failures surfaced by the telemetry engine."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base failure carrying a stable numeric code next to the message."""

    code = 0

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequest(TelemetryError):
    """Malformed input, or a measurement kind the sensor does not report."""

    code = 1


class Forbidden(TelemetryError):
    code = 2


class UnknownEntity(TelemetryError):
    code = 3


class StoreCorruption(Exception):
    """Stored bytes could not be decoded; never caused by caller input."""
