"""Bucketed ingestion of measurement batches."""

from __future__ import annotations

import logging
from typing import List, Mapping, Sequence

from models.records import I32_MAX, I32_MIN, U64_MAX, Measurement, MeasurementKind
from services.context import ExecutionContext
from services.errors import BadRequest, UnknownEntity
from storage.buckets import BucketStore

logger = logging.getLogger(__name__)


def _validate_batch(measurements: Sequence[Measurement]) -> None:
    previous = -1
    for index, item in enumerate(measurements):
        if not 0 <= item.timestamp <= U64_MAX:
            raise BadRequest(f"Measurement {index} has an out-of-range timestamp.")
        if not I32_MIN <= item.value <= I32_MAX:
            raise BadRequest(f"Measurement {index} has an out-of-range value.")
        if item.timestamp < previous:
            raise BadRequest(
                f"Measurements must be sorted by timestamp (index {index} goes backwards)."
            )
        previous = item.timestamp


class IngestionEngine:
    """Appends batches to their buckets with one read and one write per bucket."""

    def submit(
        self,
        ctx: ExecutionContext,
        sensor_id: bytes,
        kind: MeasurementKind,
        measurements: Sequence[Measurement],
    ) -> int:
        """Append ``measurements`` (sorted by timestamp); return the bucket count touched."""
        sensor = ctx.sensor_for(sensor_id, kind)
        _validate_batch(measurements)
        if not measurements:
            return 0

        buckets = BucketStore(ctx.store)
        granularity = sensor.storage_granularity

        held_seq = measurements[0].timestamp // granularity
        held: List[Measurement] = buckets.read(sensor_id, kind, held_seq)
        flushed = 0
        for item in measurements:
            seq = item.timestamp // granularity
            if seq != held_seq:
                buckets.write(sensor_id, kind, held_seq, held)
                flushed += 1
                held = buckets.read(sensor_id, kind, seq)
                held_seq = seq
            held.append(item)

        if held:
            buckets.write(sensor_id, kind, held_seq, held)
            flushed += 1

        logger.debug(
            "Merged measurements into buckets",
            extra={
                "sensor_id": sensor_id.hex(),
                "kind": kind.name,
                "measurement_count": len(measurements),
                "bucket_count": flushed,
            },
        )
        return flushed

    def submit_all(
        self,
        ctx: ExecutionContext,
        sensor_id: bytes,
        batches: Mapping[MeasurementKind, Sequence[Measurement]],
    ) -> int:
        """Process each kind's batch independently; return the total measurement count."""
        if ctx.registry.lookup(sensor_id) is None:
            raise UnknownEntity(f"Sensor {sensor_id.hex()} is not registered.")
        total = 0
        for kind, measurements in batches.items():
            self.submit(ctx, sensor_id, kind, measurements)
            total += len(measurements)
        return total
