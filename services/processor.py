"""Parsing of gateway readings uploaded as CSV."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from app.schemas import RowError
from models.records import I32_MAX, I32_MIN, U64_MAX, RawSensorReading
from services.errors import BadRequest

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("name", "timestamp")
CHANNEL_COLUMNS = ("temperature", "humidity", "pressure", "co2", "illuminance", "rssi")


@dataclass
class ParsedReadings:
    readings: List[RawSensorReading] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)


class ReadingsProcessor:
    """Turns CSV bytes into raw readings, collecting per-row problems."""

    def parse(self, contents: bytes) -> ParsedReadings:
        if not contents:
            raise BadRequest("Uploaded file is empty.")
        try:
            text = contents.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BadRequest("Uploaded file is not valid UTF-8.") from exc

        reader = csv.DictReader(io.StringIO(text))
        if not reader.fieldnames:
            raise BadRequest("CSV file is missing a header row.")

        normalized = {name.lower().strip(): name for name in reader.fieldnames}
        missing = [column for column in REQUIRED_COLUMNS if column not in normalized]
        if missing:
            raise BadRequest(f"CSV missing required columns: {', '.join(missing)}")

        parsed = ParsedReadings()
        for row_number, row in enumerate(reader, start=2):
            reading, reason = self._parse_row(row, normalized)
            if reading is None:
                logger.warning(
                    "Skipping row %s: %s",
                    row_number,
                    reason,
                    extra={"row_number": row_number, "reason": reason},
                )
                parsed.errors.append(RowError(row_number=row_number, reason=reason or "invalid row"))
                continue
            parsed.readings.append(reading)
        return parsed

    @staticmethod
    def _parse_row(
        row: dict, columns: dict
    ) -> tuple[Optional[RawSensorReading], Optional[str]]:
        def cell(column: str) -> str:
            source = columns.get(column)
            if source is None:
                return ""
            return (row.get(source) or "").strip()

        name = cell("name")
        if not name:
            return None, "missing name"

        timestamp_raw = cell("timestamp")
        if not timestamp_raw:
            return None, "missing timestamp"
        try:
            timestamp = int(timestamp_raw)
        except ValueError:
            return None, "invalid timestamp"
        if not 0 <= timestamp <= U64_MAX:
            return None, "invalid timestamp"

        channels = {}
        for column in CHANNEL_COLUMNS:
            raw = cell(column)
            if not raw:
                channels[column] = 0
                continue
            try:
                value = int(raw)
            except ValueError:
                return None, f"invalid {column} value"
            if not I32_MIN <= value <= I32_MAX:
                return None, f"{column} value out of range"
            channels[column] = value

        return RawSensorReading(name=name, timestamp=timestamp, **channels), None
