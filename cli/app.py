from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_aggregate, render_ingest_report, render_sensor


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the bucketed telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _parse_pair(text: str) -> Tuple[int, int]:
    timestamp, sep, value = text.partition(":")
    if not sep:
        raise typer.BadParameter(f"Expected TIMESTAMP:VALUE, got {text!r}.")
    try:
        return int(timestamp), int(value)
    except ValueError:
        raise typer.BadParameter(f"Expected integers in {text!r}.") from None


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    caller: Optional[str] = typer.Option(
        None,
        "--caller",
        "-c",
        help="Identity sent as X-Caller (defaults to CLI_CALLER env or 'admin').",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, caller=caller, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("register")
def register_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Sensor name, e.g. esp8266_kitchen."),
    kinds: List[str] = typer.Option(
        ..., "--kind", "-k", help="Measurement kind the sensor reports; repeatable."
    ),
    storage_granularity: int = typer.Option(600, "--storage-granularity", help="Bucket width in seconds."),
    query_granularity: int = typer.Option(14400, "--query-granularity", help="Query alignment in seconds."),
) -> None:
    """Register a sensor and print its identifier."""
    state = _get_state(ctx)
    sensor_id = state.client.register_sensor(name, kinds, storage_granularity, query_granularity)
    typer.secho(f"Registered {name}. sensor_id={sensor_id}", fg=typer.colors.GREEN)


@app.command("sensor")
def sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Hex identifier returned by register."),
) -> None:
    """Show a sensor's configuration."""
    state = _get_state(ctx)
    render_sensor(state.client.get_sensor(sensor_id))


@app.command("submit")
def submit_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Hex identifier returned by register."),
    measurements: List[str] = typer.Argument(..., help="TIMESTAMP:VALUE pairs in time order."),
    kind: str = typer.Option(..., "--kind", "-k", help="Measurement kind."),
) -> None:
    """Submit measurements of one kind for a sensor."""
    state = _get_state(ctx)
    pairs = [_parse_pair(item) for item in measurements]
    payload = state.client.submit_measurements(sensor_id, kind, pairs)
    typer.secho(
        f"Submitted {payload.get('measurement_count')} measurement(s).",
        fg=typer.colors.GREEN,
    )


@app.command("upload")
def upload_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to CSV file."),
) -> None:
    """Upload a gateway CSV of raw sensor readings."""
    state = _get_state(ctx)
    typer.echo(f"Uploading {file} to {state.config.base_url} ...")
    render_ingest_report(state.client.upload_readings(file))


@app.command("query")
def query_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Hex identifier returned by register."),
    kind: str = typer.Option(..., "--kind", "-k", help="Measurement kind."),
    aggregation: str = typer.Option("max", "--aggregation", "-a", help="One of max, min, avg."),
    start: int = typer.Option(..., "--start", help="Window start, seconds since epoch."),
    end: int = typer.Option(..., "--end", help="Window end, seconds since epoch."),
) -> None:
    """Compute an aggregate over a time window."""
    state = _get_state(ctx)
    render_aggregate(state.client.aggregate(sensor_id, kind, aggregation, start, end))
