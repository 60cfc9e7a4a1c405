from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_sensor(payload: Dict[str, Any]) -> None:
    echo_heading("Sensor")
    echo_key_values(
        [
            ("sensor_id", payload.get("sensor_id")),
            ("name", payload.get("name")),
            ("measurement_kinds", ", ".join(payload.get("measurement_kinds") or [])),
            ("storage_granularity", payload.get("storage_granularity")),
            ("query_granularity", payload.get("query_granularity")),
        ]
    )


def render_aggregate(payload: Dict[str, Any]) -> None:
    echo_heading("Aggregate")
    echo_key_values(
        [
            ("sensor_id", payload.get("sensor_id")),
            ("kind", payload.get("kind")),
            ("aggregation", payload.get("aggregation")),
            ("window", f"[{payload.get('start')}, {payload.get('end')}]"),
            ("value", payload.get("value")),
        ]
    )


def render_ingest_report(payload: Dict[str, Any]) -> None:
    echo_heading("Ingest Report")
    echo_key_values([("accepted_readings", payload.get("accepted_readings"))])

    counts = payload.get("measurement_counts") or {}
    if counts:
        typer.echo("measurement_counts:")
        for name, count in counts.items():
            typer.echo(f"  - {name}: {count}")

    skipped = payload.get("skipped_sensors") or []
    if skipped:
        typer.echo(f"skipped_sensors: {', '.join(skipped)}")

    errors = payload.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(f"  - row {error.get('row_number')}: {error.get('reason')}")
    else:
        typer.echo("No errors recorded.")
