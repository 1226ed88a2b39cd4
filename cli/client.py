from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Thin HTTP client for the sensor health service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def get_overview(self, farm_id: Optional[str] = None) -> Dict[str, Any]:
        return self._get("/overview", params=self._filters(farm_id))

    def get_kpis(self, farm_id: Optional[str] = None) -> Dict[str, Any]:
        return self._get("/kpis", params=self._filters(farm_id))

    def get_anomalies(self, farm_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._get("/anomalies", params=self._filters(farm_id))

    def get_sensor_status(self, sensor_id: str) -> Dict[str, Any]:
        return self._get(f"/sensors/{sensor_id}/status", missing=f"Sensor {sensor_id} was not found.")

    def get_series(self, sensor_id: str, window: str) -> Dict[str, Any]:
        return self._get(
            f"/sensors/{sensor_id}/series",
            params={"window": window},
            missing=f"Sensor {sensor_id} was not found.",
        )

    def refresh(self) -> Dict[str, Any]:
        try:
            response = self._client.post("/refresh")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def import_csv(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise typer.BadParameter(f"File {path} does not exist.")
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")

        try:
            with path.open("rb") as handle:
                response = self._client.post(
                    "/readings/import",
                    files={"file": (path.name, handle, "text/csv")},
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _filters(farm_id: Optional[str]) -> Dict[str, str]:
        return {"farm_id": farm_id} if farm_id else {}

    def _get(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        missing: Optional[str] = None,
    ) -> Any:
        try:
            response = self._client.get(path, params=params)
            if response.status_code == 404 and missing is not None:
                raise typer.BadParameter(missing)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
