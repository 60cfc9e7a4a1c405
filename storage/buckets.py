"""Bucket-at-a-time access to measurements held in the key-value store."""

from __future__ import annotations

import struct
from typing import Iterable, List

from datastore.kv_store import KeyValueStore
from models.records import Measurement, MeasurementKind
from services.errors import StoreCorruption
from storage.keys import encode_bucket_key

_RECORD = struct.Struct(">Qi")


def encode_bucket(bucket: Iterable[Measurement]) -> bytes:
    return b"".join(_RECORD.pack(item.timestamp, item.value) for item in bucket)


def decode_bucket(data: bytes) -> List[Measurement]:
    if len(data) % _RECORD.size:
        raise StoreCorruption(
            f"Bucket payload of {len(data)} bytes is not a whole number of records."
        )
    return [Measurement(timestamp, value) for timestamp, value in _RECORD.iter_unpack(data)]


class BucketStore:
    """Reads and rewrites whole buckets; there is no partial update."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def read(self, sensor_id: bytes, kind: MeasurementKind, seq: int) -> List[Measurement]:
        data = self.store.get(encode_bucket_key(sensor_id, kind, seq))
        if data is None:
            return []
        return decode_bucket(data)

    def write(
        self,
        sensor_id: bytes,
        kind: MeasurementKind,
        seq: int,
        bucket: Iterable[Measurement],
    ) -> None:
        self.store.set(encode_bucket_key(sensor_id, kind, seq), encode_bucket(bucket))
