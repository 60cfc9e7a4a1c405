"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, UploadFile, status

from app.schemas import (
    AggregateResponse,
    IngestReport,
    RegisterSensorResponse,
    SensorConfig,
    SensorRegistration,
    SubmitMeasurementsRequest,
    SubmitMeasurementsResponse,
)
from datastore.sensor_registry import parse_sensor_id
from models.records import AggregationKind, Measurement, MeasurementKind
from services.errors import BadRequest, Forbidden, TelemetryError, UnknownEntity
from services.telemetry import TelemetryService, build_default_service

router = APIRouter()

_STATUS_BY_ERROR = {
    BadRequest: status.HTTP_400_BAD_REQUEST,
    Forbidden: status.HTTP_403_FORBIDDEN,
    UnknownEntity: status.HTTP_404_NOT_FOUND,
}


def get_service() -> TelemetryService:
    return build_default_service()


def _raise_http(exc: TelemetryError) -> NoReturn:
    raise HTTPException(
        status_code=_STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST),
        detail=exc.message,
        headers={"X-Error-Code": str(exc.code)},
    ) from exc


@router.post(
    "/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=RegisterSensorResponse,
    summary="Register a sensor; only the registry owner may do this.",
)
async def register_sensor(
    registration: SensorRegistration,
    caller: str = Header("anonymous", alias="X-Caller"),
    service: TelemetryService = Depends(get_service),
) -> RegisterSensorResponse:
    try:
        config = service.register_sensor(caller, registration)
    except TelemetryError as exc:
        _raise_http(exc)
    return RegisterSensorResponse(sensor_id=config.sensor_id)


@router.get(
    "/sensors/{sensor_id}",
    response_model=SensorConfig,
    summary="Fetch a registered sensor's configuration.",
)
async def get_sensor(
    sensor_id: str,
    service: TelemetryService = Depends(get_service),
) -> SensorConfig:
    try:
        return service.get_sensor(parse_sensor_id(sensor_id))
    except TelemetryError as exc:
        _raise_http(exc)


@router.post(
    "/sensors/{sensor_id}/measurements",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SubmitMeasurementsResponse,
    summary="Append timestamp-sorted measurements, grouped by kind.",
)
async def submit_measurements(
    sensor_id: str,
    request: SubmitMeasurementsRequest,
    caller: str = Header("anonymous", alias="X-Caller"),
    service: TelemetryService = Depends(get_service),
) -> SubmitMeasurementsResponse:
    batches = {
        kind: [Measurement(timestamp, value) for timestamp, value in pairs]
        for kind, pairs in request.measurements.items()
    }
    try:
        count = service.submit_measurements(caller, parse_sensor_id(sensor_id), batches)
    except TelemetryError as exc:
        _raise_http(exc)
    return SubmitMeasurementsResponse(measurement_count=count)


@router.get(
    "/sensors/{sensor_id}/aggregate",
    response_model=AggregateResponse,
    summary="Compute max, min, or average over a time window.",
)
async def aggregate(
    sensor_id: str,
    kind: str = Query(..., description="Measurement kind name, e.g. 'temperature'."),
    aggregation: AggregationKind = Query(...),
    start: int = Query(..., ge=0),
    end: int = Query(..., ge=0),
    caller: str = Header("anonymous", alias="X-Caller"),
    service: TelemetryService = Depends(get_service),
) -> AggregateResponse:
    try:
        try:
            measurement_kind = MeasurementKind.from_name(kind)
        except ValueError as exc:
            raise BadRequest(str(exc)) from exc
        value = service.compute(
            caller, parse_sensor_id(sensor_id), measurement_kind, aggregation, start, end
        )
    except TelemetryError as exc:
        _raise_http(exc)
    return AggregateResponse(
        sensor_id=sensor_id,
        kind=measurement_kind.name,
        aggregation=aggregation,
        start=start,
        end=end,
        value=value,
    )


@router.post(
    "/readings",
    response_model=IngestReport,
    summary="Upload a gateway CSV of raw readings for registered sensors.",
)
async def upload_readings(
    file: UploadFile = File(..., description="CSV file of raw sensor readings."),
    caller: str = Header("anonymous", alias="X-Caller"),
    service: TelemetryService = Depends(get_service),
) -> IngestReport:
    try:
        contents = await file.read()
        return service.ingest_readings(caller, contents)
    except TelemetryError as exc:
        _raise_http(exc)
    finally:
        await file.close()


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
