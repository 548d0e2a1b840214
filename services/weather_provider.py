"""HTTP client for the OpenWeatherMap current, forecast and geocoding APIs."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from services.errors import ConfigurationError, WeatherProviderError
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

USER_AGENT = "SiteConditions/1.0"


class OpenWeatherClient:
    """Thin wrapper over ``httpx.Client`` bound to one API key.

    Requires a non-empty ``api_key``; construct it once at startup and share
    it. Every failure is raised as :class:`WeatherProviderError`.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openweathermap.org/data/2.5",
        geo_url: str = "https://api.openweathermap.org/geo/1.0",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ConfigurationError("OpenWeatherMap API key not configured.")
        self._api_key = api_key.strip()
        self._base_url = base_url.rstrip("/")
        self._geo_url = geo_url.rstrip("/")
        self._client = httpx.Client(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def fetch_current(self, latitude: float, longitude: float) -> Dict[str, Any]:
        payload = self._get_json(
            f"{self._base_url}/weather",
            {"lat": latitude, "lon": longitude, "units": "metric"},
        )
        if not isinstance(payload, dict):
            raise WeatherProviderError("Unexpected current weather payload.")
        return payload

    def fetch_forecast(self, latitude: float, longitude: float) -> list[Dict[str, Any]]:
        """Return the 3-hourly forecast samples, soonest first."""
        payload = self._get_json(
            f"{self._base_url}/forecast",
            {"lat": latitude, "lon": longitude, "units": "metric"},
        )
        samples = payload.get("list") if isinstance(payload, dict) else None
        if not isinstance(samples, list):
            raise WeatherProviderError("Unexpected forecast payload.")
        return [sample for sample in samples if isinstance(sample, dict)]

    def geocode(self, address: str) -> Optional[tuple[float, float]]:
        payload = self._get_json(f"{self._geo_url}/direct", {"q": address, "limit": 1})
        if not isinstance(payload, list):
            raise WeatherProviderError("Unexpected geocoding payload.")
        if not payload:
            return None
        first = payload[0]
        try:
            return float(first["lat"]), float(first["lon"])
        except (KeyError, TypeError, ValueError) as exc:
            raise WeatherProviderError("Geocoding result is missing coordinates.") from exc

    def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        try:
            response = self._client.get(url, params={**params, "appid": self._api_key})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise WeatherProviderError(
                _describe_status(status_code), status_code=status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise WeatherProviderError(f"Weather service request failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise WeatherProviderError("Weather service returned malformed JSON.") from exc


def _describe_status(status_code: int) -> str:
    if status_code == 401:
        return "Weather service authentication failed."
    if status_code == 429:
        return "Weather service rate limit exceeded."
    if status_code >= 500:
        return "Weather service is temporarily unavailable."
    return f"Weather service error ({status_code})."


def build_default_provider(settings: Optional[Settings] = None) -> Optional[OpenWeatherClient]:
    """Return a configured client, or ``None`` when no API key is set."""
    settings = settings or get_settings()
    if not settings.openweather_api_key:
        logger.warning("OpenWeatherMap API key not configured; weather will use fallback values.")
        return None
    return OpenWeatherClient(
        api_key=settings.openweather_api_key,
        base_url=settings.openweather_base_url,
        geo_url=settings.openweather_geo_url,
        timeout=settings.http_timeout,
    )
