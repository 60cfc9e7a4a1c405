from __future__ import annotations

import itertools

import pytest

from datastore.kv_store import MockKeyValueStore
from models.records import U64_MAX, Measurement, MeasurementKind
from services.errors import StoreCorruption
from storage.buckets import BucketStore, decode_bucket, encode_bucket
from storage.keys import BUCKET_KEY_SIZE, decode_bucket_key, encode_bucket_key

ZERO_ID = bytes(8)
MAX_ID = b"\xff" * 8


def test_bucket_key_layout_is_big_endian() -> None:
    key = encode_bucket_key(b"\x01\x02\x03\x04\x05\x06\x07\x08", MeasurementKind.co2, 0x0102)

    assert len(key) == BUCKET_KEY_SIZE == 24
    assert key[:8] == b"\x01\x02\x03\x04\x05\x06\x07\x08"
    assert key[8:16] == b"\x00" * 7 + b"\x03"
    assert key[16:] == b"\x00" * 6 + b"\x01\x02"


def test_bucket_keys_are_injective_at_boundaries() -> None:
    ids = [ZERO_ID, b"\x00" * 7 + b"\x01", MAX_ID]
    kinds = list(MeasurementKind)
    seqs = [0, 1, 2**32, U64_MAX - 1, U64_MAX]

    triples = list(itertools.product(ids, kinds, seqs))
    keys = {encode_bucket_key(*triple) for triple in triples}

    assert len(keys) == len(triples)
    for sensor_id, kind, seq in triples:
        assert decode_bucket_key(encode_bucket_key(sensor_id, kind, seq)) == (sensor_id, kind, seq)


def test_bucket_keys_sort_by_sequence_within_sensor_and_kind() -> None:
    keys = [encode_bucket_key(MAX_ID, MeasurementKind.humidity, seq) for seq in (5, 256, 70000)]

    assert keys == sorted(keys)


def test_wrong_sensor_id_width_is_an_internal_error() -> None:
    with pytest.raises(AssertionError):
        encode_bucket_key(b"short", MeasurementKind.temperature, 1)


def test_decode_bucket_key_rejects_wrong_length() -> None:
    with pytest.raises(ValueError):
        decode_bucket_key(b"\x00" * 23)


def test_read_missing_bucket_returns_empty_list() -> None:
    buckets = BucketStore(MockKeyValueStore(name="test"))

    assert buckets.read(ZERO_ID, MeasurementKind.temperature, 42) == []


def test_write_replaces_bucket_wholesale() -> None:
    store = MockKeyValueStore(name="test")
    buckets = BucketStore(store)

    buckets.write(ZERO_ID, MeasurementKind.temperature, 7, [Measurement(4200, 1), Measurement(4201, 2)])
    buckets.write(ZERO_ID, MeasurementKind.temperature, 7, [Measurement(4202, -3)])

    assert buckets.read(ZERO_ID, MeasurementKind.temperature, 7) == [Measurement(4202, -3)]
    assert store.keys() == [encode_bucket_key(ZERO_ID, MeasurementKind.temperature, 7)]


def test_bucket_encoding_preserves_extremes_and_order() -> None:
    items = [Measurement(U64_MAX, -(2**31)), Measurement(0, 2**31 - 1), Measurement(0, 0)]

    data = encode_bucket(items)

    assert len(data) == 36
    assert decode_bucket(data) == items


def test_truncated_bucket_payload_is_corruption() -> None:
    with pytest.raises(StoreCorruption):
        decode_bucket(b"\x00" * 13)
