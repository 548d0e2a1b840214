from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, TypeVar


_API_KEY_ENV = "OPENWEATHER_API_KEY"
_BASE_URL_ENV = "OPENWEATHER_BASE_URL"
_GEO_URL_ENV = "OPENWEATHER_GEO_URL"
_HTTP_TIMEOUT_ENV = "WEATHER_HTTP_TIMEOUT"
_CACHE_TTL_ENV = "WEATHER_CACHE_TTL_MINUTES"
_CACHE_PATH_ENV = "WEATHER_CACHE_PERSISTENCE_PATH"
_EVENTS_PATH_ENV = "TRACKING_EVENTS_PERSISTENCE_PATH"
_TRACKING_SOURCE_ENV = "TRACKING_SOURCE"
_WEBHOOK_SECRET_ENV = "TRACKING_WEBHOOK_SECRET"
_LOG_LEVEL_ENV = "LOG_LEVEL"

N = TypeVar("N", int, float)


@dataclass(frozen=True)
class Settings:
    openweather_api_key: Optional[str]
    openweather_base_url: str
    openweather_geo_url: str
    http_timeout: float
    cache_ttl_minutes: int
    cache_persistence_path: Optional[str]
    events_persistence_path: Optional[str]
    tracking_source: str
    webhook_secret: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive(name: str, default: N, cast: Callable[[str], N]) -> N:
    candidate = (os.getenv(name) or "").strip()
    if not candidate:
        return default
    try:
        parsed = cast(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    return _read_str_env(_LOG_LEVEL_ENV, default).upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        openweather_api_key=_read_optional_env(_API_KEY_ENV, None),
        openweather_base_url=_read_str_env(
            _BASE_URL_ENV, "https://api.openweathermap.org/data/2.5"
        ).rstrip("/"),
        openweather_geo_url=_read_str_env(
            _GEO_URL_ENV, "https://api.openweathermap.org/geo/1.0"
        ).rstrip("/"),
        http_timeout=_read_positive(_HTTP_TIMEOUT_ENV, 10.0, float),
        cache_ttl_minutes=_read_positive(_CACHE_TTL_ENV, 60, int),
        cache_persistence_path=_read_optional_env(_CACHE_PATH_ENV, "./tmp/weather_cache.json"),
        events_persistence_path=_read_optional_env(
            _EVENTS_PATH_ENV, "./tmp/tracking_events.json"
        ),
        tracking_source=_read_str_env(_TRACKING_SOURCE_ENV, "ram_tracking"),
        webhook_secret=_read_optional_env(_WEBHOOK_SECRET_ENV, None),
        log_level=_read_log_level("INFO"),
    )
