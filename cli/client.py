from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            headers={"X-Caller": config.caller},
        )

    def close(self) -> None:
        self._client.close()

    def register_sensor(
        self,
        name: str,
        kinds: Sequence[str],
        storage_granularity: int,
        query_granularity: int,
    ) -> str:
        payload = self._request(
            "POST",
            "/sensors",
            json={
                "name": name,
                "measurement_kinds": list(kinds),
                "storage_granularity": storage_granularity,
                "query_granularity": query_granularity,
            },
        )
        sensor_id = payload.get("sensor_id")
        if not isinstance(sensor_id, str):
            raise typer.BadParameter("Unexpected response payload when registering sensor.")
        return sensor_id

    def get_sensor(self, sensor_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/sensors/{sensor_id}")

    def submit_measurements(
        self, sensor_id: str, kind: str, pairs: List[Tuple[int, int]]
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/sensors/{sensor_id}/measurements",
            json={"measurements": {kind: [list(pair) for pair in pairs]}},
        )

    def upload_readings(self, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        with path.open("rb") as handle:
            return self._request(
                "POST",
                "/readings",
                files={"file": (path.name, handle, "text/csv")},
            )

    def aggregate(
        self, sensor_id: str, kind: str, aggregation: str, start: int, end: int
    ) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/sensors/{sensor_id}/aggregate",
            params={"kind": kind, "aggregation": aggregation, "start": start, "end": end},
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            detail = exc.response.json().get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
