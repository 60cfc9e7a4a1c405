"""Pydantic schemas for the HTTP API layer and the sensor registry."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from models.records import I32_MAX, I32_MIN, U64_MAX, AggregationKind, MeasurementKind

Timestamp = Annotated[int, Field(ge=0, le=U64_MAX)]
SampleValue = Annotated[int, Field(ge=I32_MIN, le=I32_MAX)]
MeasurementPair = Tuple[Timestamp, SampleValue]


def _coerce_kind(value: Any) -> Any:
    if isinstance(value, str) and not value.isdigit():
        return MeasurementKind.from_name(value)
    return value


class SensorRegistration(BaseModel):
    """Sensor settings supplied by the owner at registration time."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Sensor name, e.g. 'esp8266_kitchen'.")
    measurement_kinds: List[MeasurementKind] = Field(..., min_length=1)
    storage_granularity: int = Field(
        ..., gt=0, description="Bucket width in seconds."
    )
    query_granularity: int = Field(
        ...,
        gt=0,
        description="Minimum query alignment in seconds; a multiple of storage_granularity.",
    )

    @field_validator("measurement_kinds", mode="before")
    @classmethod
    def _parse_kind_names(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [_coerce_kind(item) for item in value]
        return value

    @field_serializer("measurement_kinds")
    def _serialize_kind_names(self, kinds: List[MeasurementKind]) -> List[str]:
        return [kind.name for kind in kinds]

    @model_validator(mode="after")
    def _check_granularity(self) -> "SensorRegistration":
        if self.query_granularity % self.storage_granularity:
            raise ValueError("query_granularity must be a multiple of storage_granularity")
        return self

    def permits(self, kind: MeasurementKind) -> bool:
        return kind in self.measurement_kinds


class SensorConfig(SensorRegistration):
    """Registered sensor as kept in the registry region of the store."""

    sensor_id: str = Field(..., pattern=r"^[0-9a-f]{16}$")

    @property
    def raw_id(self) -> bytes:
        return bytes.fromhex(self.sensor_id)


class RegisterSensorResponse(BaseModel):
    sensor_id: str


class SubmitMeasurementsRequest(BaseModel):
    """Per-kind measurement batches, each sorted by timestamp."""

    measurements: Dict[MeasurementKind, List[MeasurementPair]] = Field(default_factory=dict)

    @field_validator("measurements", mode="before")
    @classmethod
    def _parse_kind_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {_coerce_kind(key): items for key, items in value.items()}
        return value


class SubmitMeasurementsResponse(BaseModel):
    status: str = "accepted"
    measurement_count: int = Field(..., ge=0)


class AggregateResponse(BaseModel):
    sensor_id: str
    kind: str
    aggregation: AggregationKind
    start: int
    end: int
    value: int


class RowError(BaseModel):
    """Details about an uploaded row that failed validation or parsing."""

    row_number: int = Field(..., ge=1)
    reason: str


class IngestReport(BaseModel):
    """Outcome of a gateway readings upload."""

    accepted_readings: int = Field(..., ge=0)
    measurement_counts: Dict[str, int] = Field(
        default_factory=dict, description="Submitted measurements per sensor name."
    )
    skipped_sensors: List[str] = Field(default_factory=list)
    errors: List[RowError] = Field(default_factory=list)
