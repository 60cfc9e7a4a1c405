"""Host facade that runs each engine call inside one store transaction."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict, List, Mapping, Optional, Sequence

from app.schemas import IngestReport, SensorConfig, SensorRegistration
from datastore.kv_store import KeyValueStore, build_default_store
from datastore.sensor_registry import SensorRegistry
from datastore.transaction import transaction
from models.records import AggregationKind, Measurement, MeasurementKind
from services.aggregator import RangeAggregator
from services.batching import group_readings
from services.context import ExecutionContext
from services.errors import TelemetryError, UnknownEntity
from services.ingestion import IngestionEngine
from services.processor import ReadingsProcessor
from settings import get_settings

logger = logging.getLogger(__name__)


class TelemetryService:
    """Coordinates the registry, ingestion, and aggregation over one store."""

    def __init__(
        self,
        store: KeyValueStore,
        ingestion: IngestionEngine,
        aggregator: RangeAggregator,
        processor: Optional[ReadingsProcessor] = None,
    ) -> None:
        self.store = store
        self.ingestion = ingestion
        self.aggregator = aggregator
        self.processor = processor or ReadingsProcessor()

    def instantiate(self, owner: str) -> str:
        with transaction(self.store) as txn:
            return SensorRegistry(txn).instantiate(owner)

    def register_sensor(self, caller: str, registration: SensorRegistration) -> SensorConfig:
        with transaction(self.store) as txn:
            try:
                config = SensorRegistry(txn).register(caller, registration)
            except TelemetryError as exc:
                self._log_rejection("register", caller, exc)
                raise
        logger.info(
            "Registered sensor %s",
            config.name,
            extra={"caller": caller, "sensor_id": config.sensor_id},
        )
        return config

    def get_sensor(self, sensor_id: bytes) -> SensorConfig:
        config = SensorRegistry(self.store).lookup(sensor_id)
        if config is None:
            raise UnknownEntity(f"Sensor {sensor_id.hex()} is not registered.")
        return config

    def submit_measurements(
        self,
        caller: str,
        sensor_id: bytes,
        batches: Mapping[MeasurementKind, Sequence[Measurement]],
    ) -> int:
        with transaction(self.store) as txn:
            ctx = ExecutionContext(caller=caller, store=txn)
            try:
                count = self.ingestion.submit_all(ctx, sensor_id, batches)
            except TelemetryError as exc:
                self._log_rejection("submit", caller, exc, sensor_id=sensor_id.hex())
                raise
            bucket_writes = len(txn.pending)
        logger.info(
            "Accepted measurements",
            extra={
                "caller": caller,
                "sensor_id": sensor_id.hex(),
                "measurement_count": count,
                "bucket_count": bucket_writes,
            },
        )
        return count

    def compute(
        self,
        caller: str,
        sensor_id: bytes,
        kind: MeasurementKind,
        aggregation: AggregationKind,
        start: int,
        end: int,
    ) -> int:
        ctx = ExecutionContext(caller=caller, store=self.store)
        try:
            return self.aggregator.compute(ctx, sensor_id, kind, aggregation, start, end)
        except TelemetryError as exc:
            self._log_rejection("query", caller, exc, sensor_id=sensor_id.hex())
            raise

    def ingest_readings(self, caller: str, contents: bytes) -> IngestReport:
        """Parse a gateway CSV and submit each known sensor's batches.

        Sensor names resolve against ``caller`` as the registering owner.
        Unknown sensors and channels a sensor does not report are skipped.
        """
        parsed = self.processor.parse(contents)
        grouped = group_readings(parsed.readings)
        registry = SensorRegistry(self.store)

        counts: Dict[str, int] = {}
        skipped: List[str] = []
        with transaction(self.store) as txn:
            ctx = ExecutionContext(caller=caller, store=txn)
            for name, batches in sorted(grouped.items()):
                sensor = registry.lookup_by_name(caller, name)
                if sensor is None:
                    logger.warning(
                        "Ignoring readings from unregistered sensor",
                        extra={"caller": caller, "sensor_name": name},
                    )
                    skipped.append(name)
                    continue

                permitted = {}
                for kind, batch in batches.items():
                    if sensor.permits(kind):
                        permitted[kind] = batch
                    else:
                        logger.info(
                            "Dropping channel the sensor does not report",
                            extra={"sensor_name": name, "kind": kind.name},
                        )
                counts[name] = self.ingestion.submit_all(ctx, sensor.raw_id, permitted)

        accepted = sum(1 for reading in parsed.readings if reading.name in counts)
        return IngestReport(
            accepted_readings=accepted,
            measurement_counts=counts,
            skipped_sensors=skipped,
            errors=parsed.errors,
        )

    @staticmethod
    def _log_rejection(
        operation: str, caller: str, exc: TelemetryError, sensor_id: Optional[str] = None
    ) -> None:
        logger.warning(
            "Rejected %s: %s",
            operation,
            exc.message,
            extra={"caller": caller, "sensor_id": sensor_id, "error_code": exc.code},
        )


@lru_cache
def build_default_service() -> TelemetryService:
    """Factory that wires the service with the default store."""
    settings = get_settings()
    service = TelemetryService(
        store=build_default_store(),
        ingestion=IngestionEngine(),
        aggregator=RangeAggregator(max_buckets=settings.max_query_buckets),
    )
    service.instantiate(settings.owner)
    return service
