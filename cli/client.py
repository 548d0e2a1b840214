from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional, Sequence

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the site conditions service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def get_weather(
        self,
        latitude: float,
        longitude: float,
        day: Optional[date] = None,
        hour: Optional[int] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"lat": latitude, "lon": longitude}
        if day is not None:
            params["date"] = day.isoformat()
        if hour is not None:
            params["hour"] = hour
        return self._request("GET", "/weather", params=params)

    def get_forecast(self, latitude: float, longitude: float) -> Dict[str, Any]:
        return self._request("GET", "/weather/forecast", params={"lat": latitude, "lon": longitude})

    def find_nearby(
        self,
        latitude: float,
        longitude: float,
        day: date,
        radius_km: float,
        event_types: Sequence[str] = (),
    ) -> Dict[str, Any]:
        return self._request(
            "GET",
            "/tracking/events/nearby",
            params=self._location_params(latitude, longitude, day, radius_km, event_types),
        )

    def get_summary(
        self,
        latitude: float,
        longitude: float,
        day: date,
        radius_km: float,
        event_types: Sequence[str] = (),
    ) -> Dict[str, Any]:
        return self._request(
            "GET",
            "/tracking/events/summary",
            params=self._location_params(latitude, longitude, day, radius_km, event_types),
        )

    def get_cache_stats(self) -> Dict[str, Any]:
        return self._request("GET", "/weather/cache")

    def clean_cache(self) -> Dict[str, Any]:
        return self._request("DELETE", "/weather/cache")

    @staticmethod
    def _location_params(
        latitude: float,
        longitude: float,
        day: date,
        radius_km: float,
        event_types: Sequence[str],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "lat": latitude,
            "lon": longitude,
            "date": day.isoformat(),
            "radius_km": radius_km,
        }
        if event_types:
            params["event_type"] = list(event_types)
        return params

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            typer.secho(f"Request to {self._config.base_url} failed: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
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
