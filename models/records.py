"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

I32_MIN = -(2**31)
I32_MAX = 2**31 - 1
U64_MAX = 2**64 - 1

SENSOR_ID_WIDTH = 8


class MeasurementKind(IntEnum):
    """Measurement discriminants; the numeric code is part of the bucket key."""

    temperature = 1
    humidity = 2
    co2 = 3
    pressure = 4
    illuminance = 5
    rssi = 6

    @classmethod
    def from_name(cls, name: str) -> "MeasurementKind":
        try:
            return cls[name.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown measurement kind {name!r}.") from None


class AggregationKind(str, Enum):
    maximum = "max"
    minimum = "min"
    average = "avg"


@dataclass(frozen=True, slots=True)
class Measurement:
    """A single timestamped sample; ``timestamp`` is seconds since the epoch."""

    timestamp: int
    value: int


@dataclass(frozen=True, slots=True)
class RawSensorReading:
    """One line reported by a sensor gateway, carrying every channel at once."""

    name: str
    timestamp: int
    temperature: int = 0
    humidity: int = 0
    pressure: int = 0
    co2: int = 0
    illuminance: int = 0
    rssi: int = 0
