"""Unit tests for bucketed ingestion."""

from __future__ import annotations

from typing import List, Optional

import pytest

from app.schemas import SensorRegistration
from datastore.kv_store import MockKeyValueStore
from datastore.sensor_registry import SensorRegistry
from models.records import Measurement, MeasurementKind
from services.context import ExecutionContext
from services.errors import BadRequest, UnknownEntity
from services.ingestion import IngestionEngine
from storage.buckets import BucketStore
from storage.keys import BUCKET_KEY_SIZE, decode_bucket_key

T0 = 1657541274


class RecordingStore(MockKeyValueStore):
    """Counts bucket reads and writes, ignoring registry traffic."""

    def __init__(self) -> None:
        super().__init__(name="recording")
        self.bucket_reads: List[int] = []
        self.bucket_writes: List[int] = []

    def get(self, key: bytes) -> Optional[bytes]:
        if len(key) == BUCKET_KEY_SIZE:
            self.bucket_reads.append(decode_bucket_key(key)[2])
        return super().get(key)

    def set(self, key: bytes, value: bytes) -> None:
        if len(key) == BUCKET_KEY_SIZE:
            self.bucket_writes.append(decode_bucket_key(key)[2])
        super().set(key, value)


def _register(store, storage_granularity: int = 600) -> bytes:
    registry = SensorRegistry(store)
    registry.instantiate("owner")
    config = registry.register(
        "owner",
        SensorRegistration(
            name="esp2866_bedroom",
            measurement_kinds=["temperature", "humidity"],
            storage_granularity=storage_granularity,
            query_granularity=storage_granularity * 24,
        ),
    )
    return config.raw_id


def _bucket_keys(store: MockKeyValueStore) -> list[bytes]:
    return [key for key in store.keys() if len(key) == BUCKET_KEY_SIZE]


def test_measurements_land_in_timestamp_floor_bucket() -> None:
    store = MockKeyValueStore(name="test")
    sensor_id = _register(store)
    ctx = ExecutionContext(caller="owner", store=store)
    batch = [Measurement(T0, 2350), Measurement(T0 + 10, 2360), Measurement(T0 + 20, 2340)]

    IngestionEngine().submit(ctx, sensor_id, MeasurementKind.temperature, batch)

    seq = T0 // 600
    assert BucketStore(store).read(sensor_id, MeasurementKind.temperature, seq) == batch
    assert len(_bucket_keys(store)) == 1


def test_one_read_and_one_write_per_distinct_bucket() -> None:
    store = RecordingStore()
    sensor_id = _register(store, storage_granularity=10)
    ctx = ExecutionContext(caller="owner", store=store)
    batch = [Measurement(ts, ts) for ts in (100, 101, 109, 110, 115, 130, 131, 139)]

    flushed = IngestionEngine().submit(ctx, sensor_id, MeasurementKind.temperature, batch)

    assert flushed == 3
    assert store.bucket_reads == [10, 11, 13]
    assert store.bucket_writes == [10, 11, 13]


def test_new_measurements_are_appended_after_existing_ones() -> None:
    store = MockKeyValueStore(name="test")
    sensor_id = _register(store)
    ctx = ExecutionContext(caller="owner", store=store)
    engine = IngestionEngine()

    engine.submit(ctx, sensor_id, MeasurementKind.humidity, [Measurement(T0, 40)])
    engine.submit(ctx, sensor_id, MeasurementKind.humidity, [Measurement(T0 + 1, 41), Measurement(T0 + 1, 41)])

    bucket = BucketStore(store).read(sensor_id, MeasurementKind.humidity, T0 // 600)
    assert bucket == [Measurement(T0, 40), Measurement(T0 + 1, 41), Measurement(T0 + 1, 41)]


def test_untouched_buckets_are_not_written() -> None:
    store = RecordingStore()
    sensor_id = _register(store)
    ctx = ExecutionContext(caller="owner", store=store)

    IngestionEngine().submit(
        ctx, sensor_id, MeasurementKind.temperature, [Measurement(0, 1), Measurement(6000, 2)]
    )

    assert store.bucket_writes == [0, 10]


def test_empty_batch_is_a_no_op() -> None:
    store = RecordingStore()
    sensor_id = _register(store)
    ctx = ExecutionContext(caller="owner", store=store)

    assert IngestionEngine().submit(ctx, sensor_id, MeasurementKind.temperature, []) == 0
    assert store.bucket_reads == []
    assert store.bucket_writes == []


def test_unknown_sensor_raises_and_writes_nothing() -> None:
    store = MockKeyValueStore(name="test")
    ctx = ExecutionContext(caller="owner", store=store)

    with pytest.raises(UnknownEntity):
        IngestionEngine().submit(ctx, b"\x00" * 8, MeasurementKind.temperature, [Measurement(T0, 1)])

    assert store.keys() == []


def test_kind_not_reported_by_sensor_is_bad_request() -> None:
    store = MockKeyValueStore(name="test")
    sensor_id = _register(store)
    ctx = ExecutionContext(caller="owner", store=store)

    with pytest.raises(BadRequest):
        IngestionEngine().submit(ctx, sensor_id, MeasurementKind.co2, [Measurement(T0, 400)])

    assert _bucket_keys(store) == []


def test_unsorted_batch_is_rejected_before_any_write() -> None:
    store = MockKeyValueStore(name="test")
    sensor_id = _register(store)
    ctx = ExecutionContext(caller="owner", store=store)
    batch = [Measurement(T0, 1), Measurement(T0 + 1200, 2), Measurement(T0, 3)]

    with pytest.raises(BadRequest, match="sorted"):
        IngestionEngine().submit(ctx, sensor_id, MeasurementKind.temperature, batch)

    assert _bucket_keys(store) == []


@pytest.mark.parametrize(
    "measurement",
    [Measurement(-1, 0), Measurement(2**64, 0), Measurement(T0, 2**31), Measurement(T0, -(2**31) - 1)],
)
def test_out_of_range_measurements_are_rejected(measurement: Measurement) -> None:
    store = MockKeyValueStore(name="test")
    sensor_id = _register(store)
    ctx = ExecutionContext(caller="owner", store=store)

    with pytest.raises(BadRequest):
        IngestionEngine().submit(ctx, sensor_id, MeasurementKind.temperature, [measurement])


def test_submit_all_processes_each_kind_independently() -> None:
    store = MockKeyValueStore(name="test")
    sensor_id = _register(store)
    ctx = ExecutionContext(caller="owner", store=store)

    count = IngestionEngine().submit_all(
        ctx,
        sensor_id,
        {
            MeasurementKind.temperature: [Measurement(T0, 2350)],
            MeasurementKind.humidity: [Measurement(T0, 40), Measurement(T0 + 600, 41)],
        },
    )

    assert count == 3
    assert len(_bucket_keys(store)) == 3


def test_submit_all_with_no_batches_still_checks_sensor() -> None:
    ctx = ExecutionContext(caller="owner", store=MockKeyValueStore(name="test"))

    with pytest.raises(UnknownEntity):
        IngestionEngine().submit_all(ctx, b"\x01" * 8, {})
