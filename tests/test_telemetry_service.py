from __future__ import annotations

import logging

import pytest

from app.schemas import SensorRegistration
from datastore.kv_store import MockKeyValueStore
from models.records import I32_MIN, AggregationKind, Measurement, MeasurementKind
from services.aggregator import RangeAggregator
from services.errors import BadRequest, Forbidden, UnknownEntity
from services.ingestion import IngestionEngine
from services.telemetry import TelemetryService
from storage.keys import BUCKET_KEY_SIZE

T0 = 1657541274
WINDOW = (1657540000, 1657550000)


@pytest.fixture()
def service() -> TelemetryService:
    service = TelemetryService(
        store=MockKeyValueStore(name="test"),
        ingestion=IngestionEngine(),
        aggregator=RangeAggregator(),
    )
    service.instantiate("owner")
    return service


def _register(service: TelemetryService, name: str = "kitchen", kinds=("temperature", "pressure", "rssi")):
    return service.register_sensor(
        "owner",
        SensorRegistration(
            name=name,
            measurement_kinds=list(kinds),
            storage_granularity=600,
            query_granularity=14400,
        ),
    )


def _bucket_keys(service: TelemetryService) -> list[bytes]:
    return [key for key in service.store.keys() if len(key) == BUCKET_KEY_SIZE]


def test_submit_then_query_matches_direct_max_and_min(service: TelemetryService) -> None:
    sensor = _register(service)
    values = [2350, 2360, 2340, 2355]
    service.submit_measurements(
        "gateway",
        sensor.raw_id,
        {MeasurementKind.temperature: [Measurement(T0 + i, v) for i, v in enumerate(values)]},
    )

    for aggregation, expected in (
        (AggregationKind.maximum, max(values)),
        (AggregationKind.minimum, min(values)),
    ):
        result = service.compute(
            "reader", sensor.raw_id, MeasurementKind.temperature, aggregation, *WINDOW
        )
        assert result == expected


def test_failed_kind_rolls_back_whole_submission(service: TelemetryService) -> None:
    sensor = _register(service)

    with pytest.raises(BadRequest):
        service.submit_measurements(
            "gateway",
            sensor.raw_id,
            {
                MeasurementKind.temperature: [Measurement(T0, 2350)],
                MeasurementKind.co2: [Measurement(T0, 420)],
            },
        )

    assert _bucket_keys(service) == []


def test_unknown_sensor_leaves_store_unchanged(service: TelemetryService, caplog) -> None:
    sensor = _register(service)
    before = service.store.keys()

    with caplog.at_level(logging.WARNING):
        with pytest.raises(UnknownEntity):
            service.submit_measurements(
                "gateway", b"\x00" * 8, {MeasurementKind.temperature: [Measurement(T0, 1)]}
            )

    assert service.store.keys() == before
    assert service.compute(
        "reader", sensor.raw_id, MeasurementKind.temperature, AggregationKind.maximum, *WINDOW
    ) == I32_MIN
    assert any(getattr(record, "error_code", None) == UnknownEntity.code for record in caplog.records)


def test_register_requires_owner(service: TelemetryService) -> None:
    with pytest.raises(Forbidden):
        service.register_sensor(
            "mallory",
            SensorRegistration(
                name="x", measurement_kinds=["co2"], storage_granularity=60, query_granularity=60
            ),
        )


def test_get_sensor_unknown_raises(service: TelemetryService) -> None:
    with pytest.raises(UnknownEntity):
        service.get_sensor(b"\x07" * 8)


def test_ingest_readings_submits_known_sensors(service: TelemetryService) -> None:
    sensor = _register(service)
    csv_body = (
        "name,timestamp,temperature,pressure,co2,rssi\n"
        f"kitchen,{T0 + 20},2340,1012,0,-61\n"
        f"kitchen,{T0},2350,1013,410,-60\n"
        f"garage,{T0},1800,1000,0,-80\n"
        "kitchen,oops,1,1,1,1\n"
    )

    report = service.ingest_readings("owner", csv_body.encode("utf-8"))

    assert report.accepted_readings == 2
    assert report.measurement_counts == {"kitchen": 6}
    assert report.skipped_sensors == ["garage"]
    assert [error.row_number for error in report.errors] == [5]
    assert service.compute(
        "reader", sensor.raw_id, MeasurementKind.temperature, AggregationKind.minimum, *WINDOW
    ) == 2340
    assert service.compute(
        "reader", sensor.raw_id, MeasurementKind.rssi, AggregationKind.average, *WINDOW
    ) == -60


def test_ingest_readings_resolves_names_against_caller(service: TelemetryService) -> None:
    _register(service)

    report = service.ingest_readings("someone-else", f"name,timestamp\nkitchen,{T0}\n".encode())

    assert report.accepted_readings == 0
    assert report.skipped_sensors == ["kitchen"]
    assert _bucket_keys(service) == []
