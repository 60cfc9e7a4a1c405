from __future__ import annotations

from dataclasses import dataclass

from app.schemas import SensorConfig
from datastore.kv_store import KeyValueStore
from datastore.sensor_registry import SensorRegistry
from models.records import MeasurementKind
from services.errors import BadRequest, UnknownEntity


@dataclass(frozen=True)
class ExecutionContext:
    """Per-call host state: who is calling and which store view to use."""

    caller: str
    store: KeyValueStore

    @property
    def registry(self) -> SensorRegistry:
        return SensorRegistry(self.store)

    def sensor_for(self, sensor_id: bytes, kind: MeasurementKind) -> SensorConfig:
        """Resolve the sensor and check that it reports ``kind``."""
        sensor = self.registry.lookup(sensor_id)
        if sensor is None:
            raise UnknownEntity(f"Sensor {sensor_id.hex()} is not registered.")
        if not sensor.permits(kind):
            raise BadRequest(
                f"Sensor {sensor.name!r} does not report {kind.name} measurements."
            )
        return sensor
