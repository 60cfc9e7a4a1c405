"""Owner cell and sensor configurations, kept as named regions of the store."""

from __future__ import annotations

import hashlib
from typing import Optional

from pydantic import ValidationError

from app.schemas import SensorConfig, SensorRegistration
from datastore.kv_store import KeyValueStore
from models.records import SENSOR_ID_WIDTH
from services.errors import BadRequest, Forbidden, StoreCorruption

OWNER_KEY = b"owner"
SENSOR_PREFIX = b"sensors/"


def derive_sensor_id(name: str, owner: str) -> bytes:
    digest = hashlib.sha256((name + owner).encode("utf-8")).digest()
    return digest[:SENSOR_ID_WIDTH]


def parse_sensor_id(text: str) -> bytes:
    """Decode a hex sensor id from the wire, rejecting anything but 8 bytes."""
    try:
        raw = bytes.fromhex(text)
    except ValueError:
        raise BadRequest(f"Sensor id {text!r} is not valid hex.") from None
    if len(raw) != SENSOR_ID_WIDTH:
        raise BadRequest(
            f"Sensor id must be {SENSOR_ID_WIDTH} bytes, got {len(raw)}."
        )
    return raw


class SensorRegistry:

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def owner(self) -> Optional[str]:
        data = self.store.get(OWNER_KEY)
        return data.decode("utf-8") if data is not None else None

    def instantiate(self, owner: str) -> str:
        """Record ``owner`` unless an owner is already set; return the owner in effect."""
        current = self.owner()
        if current is not None:
            return current
        self.store.set(OWNER_KEY, owner.encode("utf-8"))
        return owner

    def register(self, caller: str, registration: SensorRegistration) -> SensorConfig:
        owner = self.owner()
        if owner is None or caller != owner:
            raise Forbidden("Only the registry owner may register sensors.")

        sensor_id = derive_sensor_id(registration.name, caller)
        config = SensorConfig(sensor_id=sensor_id.hex(), **registration.model_dump())
        self.store.set(SENSOR_PREFIX + sensor_id, config.model_dump_json().encode("utf-8"))
        return config

    def lookup(self, sensor_id: bytes) -> Optional[SensorConfig]:
        if len(sensor_id) != SENSOR_ID_WIDTH:
            raise BadRequest(f"Sensor id must be {SENSOR_ID_WIDTH} bytes.")
        data = self.store.get(SENSOR_PREFIX + sensor_id)
        if data is None:
            return None
        try:
            return SensorConfig.model_validate_json(data)
        except ValidationError as exc:
            raise StoreCorruption(f"Sensor {sensor_id.hex()} has an unreadable config.") from exc

    def lookup_by_name(self, owner: str, name: str) -> Optional[SensorConfig]:
        return self.lookup(derive_sensor_id(name, owner))
