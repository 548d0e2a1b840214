from __future__ import annotations

from datetime import timedelta
from typing import Iterable

from datastore.tracking_events import build_default_events_table
from datastore.weather_cache import build_default_cache
from services.ingest import build_default_ingestor
from services.locator import build_default_locator
from services.weather import build_default_resolver
from settings import get_settings


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    cache_path = tmp_path / "weather.json"
    events_path = tmp_path / "events.json"

    monkeypatch.setenv("OPENWEATHER_API_KEY", " key-123 ")
    monkeypatch.setenv("OPENWEATHER_BASE_URL", "http://weather.local/data/2.5/")
    monkeypatch.setenv("WEATHER_HTTP_TIMEOUT", "2.5")
    monkeypatch.setenv("WEATHER_CACHE_TTL_MINUTES", "15")
    monkeypatch.setenv("WEATHER_CACHE_PERSISTENCE_PATH", str(cache_path))
    monkeypatch.setenv("TRACKING_EVENTS_PERSISTENCE_PATH", str(events_path))
    monkeypatch.setenv("TRACKING_SOURCE", "gps_vendor")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    caches = (
        get_settings,
        build_default_cache,
        build_default_events_table,
        build_default_resolver,
        build_default_locator,
        build_default_ingestor,
    )
    _clear_caches(caches)

    try:
        settings = get_settings()
        resolver = build_default_resolver()
        locator = build_default_locator()
        ingestor = build_default_ingestor()

        assert settings.openweather_api_key == "key-123"
        assert settings.openweather_base_url == "http://weather.local/data/2.5"
        assert settings.http_timeout == 2.5
        assert settings.log_level == "DEBUG"
        assert resolver.provider is not None
        assert resolver.cache_ttl == timedelta(minutes=15)
        assert resolver.cache.persistence_path == cache_path
        assert locator.table.persistence_path == events_path
        assert locator.source == "gps_vendor"
        assert ingestor.source == "gps_vendor"
        assert ingestor.table is locator.table
    finally:
        provider = build_default_resolver().provider
        if provider is not None:
            provider.close()
        _clear_caches(caches)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.delenv("OPENWEATHER_API_KEY", raising=False)
    monkeypatch.setenv("WEATHER_CACHE_TTL_MINUTES", "-5")
    monkeypatch.setenv("WEATHER_HTTP_TIMEOUT", "soon")
    monkeypatch.setenv("TRACKING_WEBHOOK_SECRET", "   ")
    get_settings.cache_clear()

    try:
        settings = get_settings()

        assert settings.openweather_api_key is None
        assert settings.cache_ttl_minutes == 60
        assert settings.http_timeout == 10.0
        assert settings.webhook_secret is None
        assert settings.tracking_source == "ram_tracking"
    finally:
        get_settings.cache_clear()


def test_missing_api_key_leaves_resolver_on_fallback(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("OPENWEATHER_API_KEY", raising=False)
    monkeypatch.setenv("WEATHER_CACHE_PERSISTENCE_PATH", str(tmp_path / "weather.json"))
    caches = (get_settings, build_default_cache, build_default_resolver)
    _clear_caches(caches)

    try:
        resolver = build_default_resolver()

        assert resolver.provider is None
        assert resolver.get_current_weather(45.0, -75.0).source == "fallback"
    finally:
        _clear_caches(caches)
