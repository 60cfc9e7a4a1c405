"""Aggregation of bucketed measurements over a query window."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from models.records import I32_MAX, I32_MIN, U64_MAX, AggregationKind, Measurement, MeasurementKind
from services.context import ExecutionContext
from services.errors import BadRequest
from storage.buckets import BucketStore

logger = logging.getLogger(__name__)


def align_window(start: int, end: int, query_granularity: int) -> Tuple[int, int]:
    """Round ``start`` down and ``end`` down plus one full step to query boundaries.

    The end always moves past its boundary, even when it already sits on one.
    """
    aligned_start = start - start % query_granularity
    aligned_end = end - end % query_granularity + query_granularity
    return aligned_start, aligned_end


@dataclass(frozen=True)
class ScanRange:
    """Half-open range ``[seq_lo, seq_hi)`` of bucket sequence numbers."""

    aligned_start: int
    aligned_end: int
    seq_lo: int
    seq_hi: int

    @property
    def bucket_count(self) -> int:
        return max(self.seq_hi - self.seq_lo, 0)


def plan_scan(start: int, end: int, storage_granularity: int, query_granularity: int) -> ScanRange:
    aligned_start, aligned_end = align_window(start, end, query_granularity)
    seq_lo = aligned_start // storage_granularity
    seq_hi = min(aligned_end // storage_granularity, U64_MAX + 1)
    return ScanRange(aligned_start, aligned_end, seq_lo, seq_hi)


def _truncating_div(total: int, count: int) -> int:
    quotient = abs(total) // count
    return -quotient if total < 0 else quotient


@dataclass
class RunningAggregate:
    """Fold state for one aggregation; starts from the documented sentinels."""

    aggregation: AggregationKind
    value: int = 0
    total: int = 0
    count: int = 0

    def __post_init__(self) -> None:
        if self.aggregation is AggregationKind.maximum:
            self.value = I32_MIN
        elif self.aggregation is AggregationKind.minimum:
            self.value = I32_MAX

    def fold(self, samples: Iterable[Measurement]) -> None:
        for sample in samples:
            self.count += 1
            if self.aggregation is AggregationKind.maximum:
                if sample.value > self.value:
                    self.value = sample.value
            elif self.aggregation is AggregationKind.minimum:
                if sample.value < self.value:
                    self.value = sample.value
            else:
                self.total += sample.value

    def result(self) -> int:
        if self.aggregation is not AggregationKind.average:
            return self.value
        if not self.count:
            return 0
        return _truncating_div(self.total, self.count)


class RangeAggregator:
    """Walks the buckets covering a query window in sequence order."""

    def __init__(self, max_buckets: Optional[int] = None) -> None:
        self.max_buckets = max_buckets

    def compute(
        self,
        ctx: ExecutionContext,
        sensor_id: bytes,
        kind: MeasurementKind,
        aggregation: AggregationKind,
        start: int,
        end: int,
    ) -> int:
        sensor = ctx.sensor_for(sensor_id, kind)
        if start < 0 or end < 0 or start > end:
            raise BadRequest(f"Invalid query window [{start}, {end}].")

        scan = plan_scan(start, end, sensor.storage_granularity, sensor.query_granularity)
        if self.max_buckets is not None and scan.bucket_count > self.max_buckets:
            raise BadRequest(
                f"Query window spans {scan.bucket_count} buckets; the limit is {self.max_buckets}."
            )

        buckets = BucketStore(ctx.store)
        running = RunningAggregate(aggregation)
        for seq in range(scan.seq_lo, scan.seq_hi):
            running.fold(buckets.read(sensor_id, kind, seq))

        result = running.result()
        logger.debug(
            "Aggregated query window",
            extra={
                "sensor_id": sensor_id.hex(),
                "kind": kind.name,
                "aggregation": aggregation.value,
                "seq_range": f"[{scan.seq_lo},{scan.seq_hi})",
                "measurement_count": running.count,
                "result": result,
            },
        )
        return result
