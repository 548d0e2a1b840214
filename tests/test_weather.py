"""Tests for weather resolution, caching and fallback behaviour."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from app.schemas import (
    CacheRecord,
    WeatherCondition,
    WeatherSnapshot,
    WeatherTrend,
)
from datastore.weather_cache import WeatherCacheTable
from models.records import CacheKey
from services.weather import WeatherResolver, build_snapshot, fallback_snapshot
from services.weather_provider import OpenWeatherClient

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

Handler = Callable[[httpx.Request], httpx.Response]


def _current_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "weather": [{"main": "Snow", "description": "light snow"}],
        "main": {"temp": -5.0},
        "wind": {"speed": 5.0},
        "snow": {"1h": 2.0},
        "dt": 1705320000,
    }
    payload.update(overrides)
    return payload


def _forecast_payload(*temps: float) -> Dict[str, Any]:
    start = datetime(2024, 1, 15, 15, tzinfo=timezone.utc)
    samples = []
    for index, temp in enumerate(temps):
        stamp = start + timedelta(hours=3 * index)
        samples.append(
            {"main": {"temp": temp}, "dt_txt": stamp.strftime("%Y-%m-%d %H:%M:%S")}
        )
    return {"list": samples}


class ProviderStub:
    """Records requests and answers them from canned payloads."""

    def __init__(
        self,
        current: Optional[Dict[str, Any]] = None,
        forecast: Optional[Dict[str, Any]] = None,
        handler: Optional[Handler] = None,
    ) -> None:
        self.current = current if current is not None else _current_payload()
        self.forecast = forecast if forecast is not None else _forecast_payload(-4.0, -2.0)
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        if request.url.path.endswith("/forecast"):
            return httpx.Response(200, json=self.forecast)
        return httpx.Response(200, json=self.current)

    def client(self) -> OpenWeatherClient:
        return OpenWeatherClient(api_key="test-key", transport=httpx.MockTransport(self))


def _resolver(
    stub: Optional[ProviderStub] = None,
    cache: Optional[WeatherCacheTable] = None,
) -> WeatherResolver:
    return WeatherResolver(
        cache=cache or WeatherCacheTable(name="test"),
        provider=stub.client() if stub is not None else None,
        clock=lambda: NOW,
    )


def _cached_record(temperature: float, conditions: WeatherCondition, hour: int = 0) -> CacheRecord:
    key = CacheKey.build(45.00, -75.00, date(2024, 1, 15), hour, "openweathermap")
    return CacheRecord(
        latitude=key.latitude,
        longitude=key.longitude,
        forecast_date=key.forecast_date,
        hour=key.hour,
        source=key.source,
        snapshot=WeatherSnapshot(
            temperature=temperature,
            conditions=conditions,
            trend=WeatherTrend.steady,
            forecast_confidence=0.9,
        ),
        cached_at=NOW,
        expires_at=NOW + timedelta(minutes=30),
    )


def test_cached_record_returned_without_provider_call() -> None:
    stub = ProviderStub()
    cache = WeatherCacheTable(name="test")
    cache.upsert(_cached_record(-5.0, WeatherCondition.light_snow))
    resolver = _resolver(stub, cache)

    snapshot = resolver.get_current_weather(45.00, -75.00, "2024-01-15")

    assert snapshot.temperature == -5.0
    assert snapshot.conditions is WeatherCondition.light_snow
    assert stub.requests == []


def test_cache_hit_returns_record_values_unchanged() -> None:
    stub = ProviderStub()
    cache = WeatherCacheTable(name="test")
    record = _cached_record(-11.5, WeatherCondition.heavy_snow, hour=9)
    cache.upsert(record)
    resolver = _resolver(stub, cache)

    snapshot = resolver.get_current_weather(
        45.001, -74.998, datetime(2024, 1, 15, 9, 40, tzinfo=timezone.utc)
    )

    assert snapshot == record.snapshot
    assert stub.requests == []


def test_expired_record_triggers_provider_fetch() -> None:
    stub = ProviderStub()
    cache = WeatherCacheTable(name="test")
    record = _cached_record(20.0, WeatherCondition.clear)
    cache.upsert(record.model_copy(update={"expires_at": NOW - timedelta(seconds=1)}))
    resolver = _resolver(stub, cache)

    snapshot = resolver.get_current_weather(45.0, -75.0, date(2024, 1, 15))

    assert snapshot.temperature == -5.0
    assert len(stub.requests) == 2


def test_provider_result_is_mapped_and_cached() -> None:
    stub = ProviderStub(forecast=_forecast_payload(-1.0, 0.5, -8.0))
    resolver = _resolver(stub)

    first = resolver.get_current_weather(45.0, -75.0, datetime(2024, 1, 15, 12, tzinfo=timezone.utc))
    second = resolver.get_current_weather(45.0, -75.0, datetime(2024, 1, 15, 12, 30, tzinfo=timezone.utc))

    assert first.conditions is WeatherCondition.light_snow
    assert first.trend is WeatherTrend.up
    assert first.wind_speed_kmh == pytest.approx(18.0)
    assert first.precipitation_mm == pytest.approx(2.0)
    assert first.snowfall_cm == pytest.approx(0.2)
    assert first.forecast_confidence == 0.9
    assert first.daytime_high == 0.5
    assert first.daytime_low == -8.0
    assert first.source == "openweathermap"
    assert second == first
    assert len(stub.requests) == 2

    records = resolver.cache.scan()
    assert len(records) == 1
    assert records[0].expires_at == NOW + timedelta(hours=1)
    assert records[0].hour == 12


def test_requests_use_metric_units_and_api_key() -> None:
    stub = ProviderStub()
    resolver = _resolver(stub)

    resolver.get_current_weather(45.0, -75.0)

    params = stub.requests[0].url.params
    assert params["units"] == "metric"
    assert params["appid"] == "test-key"
    assert params["lat"] == "45.0"


@pytest.mark.parametrize(
    ("overrides", "max_confidence"),
    [
        ({"weather": []}, 0.7),
        ({"main": None}, 0.6),
        ({"weather": [], "main": None}, 0.4),
    ],
)
def test_missing_fields_reduce_confidence(overrides: Dict[str, Any], max_confidence: float) -> None:
    stub = ProviderStub(current=_current_payload(**overrides))
    resolver = _resolver(stub)

    snapshot = resolver.get_current_weather(45.0, -75.0)

    assert snapshot.forecast_confidence <= max_confidence
    assert snapshot.forecast_confidence == max_confidence
    assert snapshot.source == "openweathermap"


def test_missing_measurements_fall_back_to_forecast_temperature() -> None:
    stub = ProviderStub(current=_current_payload(main=None), forecast=_forecast_payload(-3.5))
    resolver = _resolver(stub)

    snapshot = resolver.get_current_weather(45.0, -75.0)

    assert snapshot.temperature == -3.5
    assert snapshot.trend is WeatherTrend.steady


def test_forecast_failure_degrades_to_empty_forecast() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/forecast"):
            return httpx.Response(503)
        return httpx.Response(200, json=_current_payload())

    resolver = _resolver(ProviderStub(handler=handler))

    snapshot = resolver.get_current_weather(45.0, -75.0)

    assert snapshot.forecast_confidence == 0.8
    assert snapshot.trend is WeatherTrend.steady
    assert snapshot.source == "openweathermap"


def test_network_failure_returns_fallback_without_raising() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    resolver = _resolver(ProviderStub(handler=handler))

    snapshot = resolver.get_current_weather(45.0, -75.0)

    assert snapshot.forecast_confidence <= 0.3
    assert snapshot.source == "fallback"
    assert resolver.cache.scan() == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"message": "Invalid API key"}),
        httpx.Response(500),
        httpx.Response(200, content=b"<html>not json</html>"),
        httpx.Response(200, json=["unexpected"]),
    ],
)
def test_provider_errors_funnel_into_fallback(response: httpx.Response) -> None:
    resolver = _resolver(ProviderStub(handler=lambda _request: response))

    snapshot = resolver.get_current_weather(45.0, -75.0, datetime(2024, 1, 15, 6, tzinfo=timezone.utc))

    assert snapshot == fallback_snapshot(45.0, -75.0, 6)


def test_missing_provider_uses_fallback() -> None:
    resolver = _resolver(stub=None)

    snapshot = resolver.get_current_weather(45.0, -75.0, datetime(2024, 1, 15, 8, tzinfo=timezone.utc))

    assert snapshot.source == "fallback"
    assert 0.1 <= snapshot.forecast_confidence <= 0.3
    assert resolver.cache.scan() == []


def test_fallback_is_deterministic_per_location_and_hour() -> None:
    first = fallback_snapshot(45.0, -75.0, 8)
    second = fallback_snapshot(45.0, -75.0, 8)
    other_hour = fallback_snapshot(45.0, -75.0, 9)

    assert first == second
    assert first != other_hour
    assert first.forecast_confidence == 0.1


def test_cache_write_failure_is_logged_not_raised(caplog) -> None:
    class BrokenCache(WeatherCacheTable):
        def upsert(self, record: CacheRecord) -> None:
            raise OSError("disk full")

    resolver = _resolver(ProviderStub(), BrokenCache(name="broken"))

    with caplog.at_level(logging.WARNING):
        snapshot = resolver.get_current_weather(45.0, -75.0)

    assert snapshot.source == "openweathermap"
    records = [record for record in caplog.records if record.name == "services.weather"]
    assert any("cache write failed" in record.getMessage() for record in records)
    assert any(getattr(record, "reason", None) == "disk full" for record in records)


def test_get_forecast_uses_next_eight_samples() -> None:
    stub = ProviderStub(forecast=_forecast_payload(-4.0, -2.0, -9.0, 1.0, 0.0, -1.0, -3.0, -6.0, 12.0, -20.0))
    resolver = _resolver(stub)

    forecast = resolver.get_forecast(45.0, -75.0)

    assert forecast.high == 1.0
    assert forecast.low == -9.0


def test_get_forecast_defaults_on_failure() -> None:
    resolver = _resolver(ProviderStub(handler=lambda _request: httpx.Response(502)))

    forecast = resolver.get_forecast(45.0, -75.0)

    assert (forecast.high, forecast.low) == (0.0, 0.0)
    assert _resolver(stub=None).get_forecast(45.0, -75.0).high == 0.0


def test_geocode_returns_first_match() -> None:
    stub = ProviderStub(
        handler=lambda _request: httpx.Response(200, json=[{"lat": 45.42, "lon": -75.69}])
    )
    resolver = _resolver(stub)

    assert resolver.geocode("Ottawa, ON") == (45.42, -75.69)
    assert stub.requests[0].url.path.endswith("/geo/1.0/direct")
    assert stub.requests[0].url.params["q"] == "Ottawa, ON"


def test_geocode_failure_returns_none() -> None:
    resolver = _resolver(ProviderStub(handler=lambda _request: httpx.Response(500)))

    assert resolver.geocode("Nowhere") is None


def test_clean_expired_cache_and_stats() -> None:
    cache = WeatherCacheTable(name="test")
    fresh = _cached_record(-5.0, WeatherCondition.light_snow, hour=1)
    stale = _cached_record(-6.0, WeatherCondition.clear, hour=2)
    cache.upsert(fresh)
    cache.upsert(stale.model_copy(update={"expires_at": NOW - timedelta(hours=2)}))
    resolver = _resolver(stub=None, cache=cache)

    stats = resolver.cache_stats()
    assert stats.total_records == 2
    assert stats.expired_records == 1
    assert stats.records_by_date == {"2024-01-15": 2}
    assert stats.unique_locations == 1
    assert stats.oldest_date == date(2024, 1, 15)

    assert resolver.clean_expired_cache() == 1
    assert resolver.cache_stats().total_records == 1


def test_build_snapshot_estimates_daytime_range_without_forecast() -> None:
    snapshot = build_snapshot(_current_payload(), [], date(2024, 1, 15), 12)

    assert snapshot.daytime_high is not None and snapshot.daytime_low is not None
    assert snapshot.daytime_high - snapshot.daytime_low == pytest.approx(8.0, abs=0.11)
    assert snapshot.forecast_confidence == 0.8


def test_provider_requires_api_key() -> None:
    from services.errors import ConfigurationError

    with pytest.raises(ConfigurationError):
        OpenWeatherClient(api_key="  ")


def test_malformed_when_text_raises_before_any_lookup() -> None:
    stub = ProviderStub()
    resolver = _resolver(stub)

    with pytest.raises(ValueError):
        resolver.get_current_weather(45.0, -75.0, "15/01/2024")

    assert stub.requests == []


def test_cached_weather_for_dates_returns_latest_fresh_record_per_day() -> None:
    cache = WeatherCacheTable(name="test")
    older = _cached_record(-3.0, WeatherCondition.clear, hour=1)
    older = older.model_copy(update={"cached_at": NOW - timedelta(minutes=20)})
    newer = _cached_record(-8.0, WeatherCondition.snow, hour=2)
    expired = _cached_record(1.0, WeatherCondition.rain).model_copy(
        update={"forecast_date": date(2024, 1, 16), "expires_at": NOW - timedelta(minutes=1)}
    )
    elsewhere = _cached_record(20.0, WeatherCondition.clear, hour=3).model_copy(
        update={"latitude": 40.0}
    )
    for record in (older, newer, expired, elsewhere):
        cache.upsert(record)
    resolver = _resolver(cache=cache)

    found = resolver.get_cached_weather_for_dates(
        45.001, -74.998, [date(2024, 1, 15), date(2024, 1, 16), date(2024, 1, 17), date(2024, 1, 15)]
    )

    assert list(found) == [date(2024, 1, 15), date(2024, 1, 16), date(2024, 1, 17)]
    assert found[date(2024, 1, 15)] is not None
    assert found[date(2024, 1, 15)].temperature == -8.0
    assert found[date(2024, 1, 16)] is None
    assert found[date(2024, 1, 17)] is None


def test_cached_weather_for_dates_read_failure_returns_empty(caplog) -> None:
    class UnreadableCache(WeatherCacheTable):
        def scan(self):
            raise OSError("table offline")

    resolver = _resolver(cache=UnreadableCache(name="broken"))

    with caplog.at_level(logging.WARNING):
        assert resolver.get_cached_weather_for_dates(45.0, -75.0, [date(2024, 1, 15)]) == {}

    assert any("cache read failed" in record.getMessage() for record in caplog.records)
