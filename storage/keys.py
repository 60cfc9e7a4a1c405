"""Fixed-width bucket keys.

A bucket key is ``sensor_id (8 bytes) || kind (u64 BE) || seq (u64 BE)``.
Every field has a fixed width, so keys for one sensor and kind share a
16-byte prefix and sort by sequence number.
"""

from __future__ import annotations

import struct
from typing import Tuple

from models.records import SENSOR_ID_WIDTH, MeasurementKind

_KEY_LAYOUT = struct.Struct(f">{SENSOR_ID_WIDTH}sQQ")

BUCKET_KEY_SIZE = _KEY_LAYOUT.size


def encode_bucket_key(sensor_id: bytes, kind: int, seq: int) -> bytes:
    # Callers hand over ids that went through parse_sensor_id or the registry.
    assert len(sensor_id) == SENSOR_ID_WIDTH, "sensor id has the wrong width"
    return _KEY_LAYOUT.pack(sensor_id, int(kind), seq)


def decode_bucket_key(key: bytes) -> Tuple[bytes, MeasurementKind, int]:
    if len(key) != BUCKET_KEY_SIZE:
        raise ValueError(f"Bucket keys are {BUCKET_KEY_SIZE} bytes, got {len(key)}.")
    sensor_id, kind, seq = _KEY_LAYOUT.unpack(key)
    return sensor_id, MeasurementKind(kind), seq
