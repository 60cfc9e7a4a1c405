"""Conversion of raw gateway readings into per-kind measurement batches."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List

from models.records import Measurement, MeasurementKind, RawSensorReading

SensorBatches = Dict[MeasurementKind, List[Measurement]]


def split_reading(reading: RawSensorReading) -> Dict[MeasurementKind, Measurement]:
    """Pick the channels a reading actually carries.

    RSSI is always present. A positive pressure also vouches for the
    temperature channel, which may legitimately be zero or negative.
    """
    ts = reading.timestamp
    channels = {MeasurementKind.rssi: Measurement(ts, reading.rssi)}
    if reading.pressure > 0:
        channels[MeasurementKind.pressure] = Measurement(ts, reading.pressure)
        channels[MeasurementKind.temperature] = Measurement(ts, reading.temperature)
    if reading.humidity > 0:
        channels[MeasurementKind.humidity] = Measurement(ts, reading.humidity)
    if reading.co2 > 0:
        channels[MeasurementKind.co2] = Measurement(ts, reading.co2)
    if reading.illuminance > 0:
        channels[MeasurementKind.illuminance] = Measurement(ts, reading.illuminance)
    return channels


def group_readings(readings: Iterable[RawSensorReading]) -> Dict[str, SensorBatches]:
    """Group readings by sensor name and kind, each batch sorted by timestamp."""
    grouped: Dict[str, SensorBatches] = defaultdict(lambda: defaultdict(list))
    for reading in readings:
        for kind, measurement in split_reading(reading).items():
            grouped[reading.name][kind].append(measurement)

    return {
        name: {
            kind: sorted(batch, key=lambda item: item.timestamp)
            for kind, batch in batches.items()
        }
        for name, batches in grouped.items()
    }
