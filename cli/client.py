from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the analytics service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def ingest(self, reading: Dict[str, Any]) -> Dict[str, Any]:
        response = self._request("POST", "/readings", json=reading)
        return response.json()

    def sensor_analytics(self, sensor_id: str) -> Dict[str, Any]:
        response = self._request(
            "GET",
            f"/sensors/{sensor_id}/analytics",
            not_found=f"Sensor {sensor_id} has no analytics.",
        )
        return response.json()

    def area(self, latitude: float, longitude: float, radius_km: float) -> List[Dict[str, Any]]:
        response = self._request(
            "GET",
            "/sensors/area",
            params={"latitude": latitude, "longitude": longitude, "radius_km": radius_km},
        )
        return response.json()

    def system_health(self) -> Dict[str, Any]:
        return self._request("GET", "/system/health").json()

    def cache_stats(self) -> Dict[str, Any]:
        return self._request("GET", "/reports/cache-stats").json()

    def report(self, config: Dict[str, Any]) -> str:
        return self._request("POST", "/reports", json=config).text

    def _request(
        self, method: str, url: str, not_found: Optional[str] = None, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
            if not_found is not None and response.status_code == 404:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True
            )
            raise typer.Exit(code=1)
        return response

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except (ValueError, AttributeError):
            detail = exc.response.text.strip()
        if isinstance(detail, dict) and detail.get("details"):
            detail = "; ".join(str(item) for item in detail["details"])
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
