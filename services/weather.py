"""Weather resolution with caching and deterministic fallback values."""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Union

from app.schemas import (
    CacheRecord,
    CacheStats,
    Forecast,
    WeatherCondition,
    WeatherSnapshot,
    WeatherTrend,
)
from datastore.weather_cache import WeatherCacheTable, build_default_cache
from models.records import CacheKey
from services.conditions import (
    calculate_confidence,
    calculate_trend,
    map_condition,
    sample_temperature,
)
from services.errors import WeatherProviderError
from services.weather_provider import OpenWeatherClient, build_default_provider
from settings import get_settings

logger = logging.getLogger(__name__)

PROVIDER_SOURCE = "openweathermap"
FALLBACK_SOURCE = "fallback"
FALLBACK_CONFIDENCE = 0.1
FORECAST_WINDOW_SAMPLES = 8
DAILY_RANGE_C = 8.0
MS_TO_KMH = 3.6
MM_PER_CM = 10.0

_FALLBACK_CONDITIONS = (
    WeatherCondition.clear,
    WeatherCondition.light_snow,
    WeatherCondition.clear,
    WeatherCondition.heavy_snow,
    WeatherCondition.drifting_snow,
    WeatherCondition.light_snow,
)
_SNOWY = {
    WeatherCondition.light_snow,
    WeatherCondition.heavy_snow,
    WeatherCondition.drifting_snow,
}

Moment = Union[datetime, date, str, None]

# Provider failures and malformed payloads end up on the fallback path.
_DEGRADED_ERRORS = (WeatherProviderError, KeyError, TypeError, ValueError)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def fallback_snapshot(latitude: float, longitude: float, hour: int) -> WeatherSnapshot:
    """Plausible placeholder conditions; identical inputs give identical output."""
    seed = abs(round(latitude * 100)) * 31 + abs(round(longitude * 100)) * 17 + hour * 7
    conditions = _FALLBACK_CONDITIONS[seed % len(_FALLBACK_CONDITIONS)]
    temperature = round(-12.0 + (seed % 150) / 10, 1)
    snowfall = round(((seed // 7) % 6) * 0.5, 1) if conditions in _SNOWY else 0.0
    precipitation = round(snowfall + ((seed // 11) % 3) * 0.2, 1)
    if conditions is WeatherCondition.clear:
        precipitation = 0.0
    return WeatherSnapshot(
        temperature=temperature,
        conditions=conditions,
        precipitation_mm=precipitation,
        snowfall_cm=snowfall,
        wind_speed_kmh=float(5 + (seed // 13) % 30),
        trend=list(WeatherTrend)[seed % 3],
        forecast_confidence=FALLBACK_CONFIDENCE,
        daytime_high=round(temperature + DAILY_RANGE_C / 2, 1),
        daytime_low=round(temperature - DAILY_RANGE_C / 2, 1),
        source=FALLBACK_SOURCE,
    )


def _sample_day(sample: Mapping[str, Any]) -> Optional[date]:
    text = sample.get("dt_txt")
    if isinstance(text, str) and len(text) >= 10:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    stamp = sample.get("dt")
    if isinstance(stamp, (int, float)) and not isinstance(stamp, bool):
        return datetime.fromtimestamp(stamp, tz=timezone.utc).date()
    return None


def daytime_range(
    temperature: float, forecast: Sequence[Mapping[str, Any]], day: date, hour: int
) -> tuple[float, float]:
    """High and low over ``day`` and the day after, current reading included.

    Without usable samples the range is estimated from a typical diurnal
    swing peaking mid-afternoon.
    """
    window = {day, day + timedelta(days=1)}
    temps: list[float] = []
    for sample in forecast:
        value = sample_temperature(sample)
        if value is not None and _sample_day(sample) in window:
            temps.append(value)
    if temps:
        high = max(temps + [temperature])
        low = min(temps + [temperature])
    else:
        offset = math.sin((hour - 6) / 24 * 2 * math.pi) * (DAILY_RANGE_C / 2)
        high = temperature + DAILY_RANGE_C / 2 - offset
        low = temperature - DAILY_RANGE_C / 2 - offset
    return round(high, 1), round(low, 1)


def _measurement(payload: Mapping[str, Any], section: str, field: str) -> float:
    block = payload.get(section)
    if not isinstance(block, Mapping):
        return 0.0
    value = block.get(field)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def build_snapshot(
    current: Mapping[str, Any],
    forecast: Sequence[Mapping[str, Any]],
    day: date,
    hour: int,
) -> WeatherSnapshot:
    """Convert provider payloads into a snapshot; missing fields lower confidence."""
    weather = current.get("weather")
    condition_block = weather[0] if isinstance(weather, list) and weather else None
    if not isinstance(condition_block, Mapping):
        condition_block = None

    main = current.get("main")
    temperature = sample_temperature(current) if isinstance(main, Mapping) else None
    has_measurements = temperature is not None
    if temperature is None:
        temperature = next(
            (value for value in map(sample_temperature, forecast) if value is not None), 0.0
        )

    conditions = map_condition(
        condition_block.get("main") if condition_block else None,
        condition_block.get("description") if condition_block else None,
    )
    snow_mm = _measurement(current, "snow", "1h")
    rain_mm = _measurement(current, "rain", "1h")
    high, low = daytime_range(temperature, forecast, day, hour)

    return WeatherSnapshot(
        temperature=temperature,
        conditions=conditions,
        precipitation_mm=rain_mm + snow_mm,
        snowfall_cm=snow_mm / MM_PER_CM,
        wind_speed_kmh=round(_measurement(current, "wind", "speed") * MS_TO_KMH, 2),
        trend=calculate_trend(temperature, forecast),
        forecast_confidence=calculate_confidence(
            has_condition=condition_block is not None,
            has_measurements=has_measurements,
            forecast_count=len(forecast),
        ),
        daytime_high=high,
        daytime_low=low,
        source=PROVIDER_SOURCE,
    )


class WeatherResolver:
    """Resolves site weather through the cache, the provider, then a fallback.

    The public methods never raise for provider unavailability or failed
    cache writes; malformed ``when`` text is the caller's error. Without a
    provider (no API key configured) every lookup uses fallback values.
    """

    def __init__(
        self,
        cache: WeatherCacheTable,
        provider: Optional[OpenWeatherClient],
        cache_ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.cache = cache
        self.provider = provider
        self.cache_ttl = cache_ttl
        self._clock = clock

    def get_current_weather(
        self, latitude: float, longitude: float, when: Moment = None
    ) -> WeatherSnapshot:
        """Resolve conditions at the given moment, never failing on provider errors.

        ``when`` may be a datetime, a date (hour 0), ISO-8601 text or ``None``
        for now. Callers validate text input: a malformed string raises
        ``ValueError`` before the cache or provider is consulted.
        """
        day, hour = self._resolve_moment(when)
        key = CacheKey.build(latitude, longitude, day, hour, PROVIDER_SOURCE)
        context = {"latitude": latitude, "longitude": longitude, "cache_key": key.as_string()}

        cached = self._read_cache(key, context)
        if cached is not None:
            logger.debug("Weather cache hit", extra=context)
            return cached.snapshot

        if self.provider is None:
            logger.info("Weather provider not configured; using fallback", extra=context)
            return fallback_snapshot(latitude, longitude, hour)

        try:
            current = self.provider.fetch_current(latitude, longitude)
            forecast = self._forecast_or_empty(latitude, longitude, context)
            snapshot = build_snapshot(current, forecast, day, hour)
        except _DEGRADED_ERRORS as exc:
            logger.warning(
                "Weather lookup failed; using fallback",
                extra={
                    **context,
                    "status_code": getattr(exc, "status_code", None),
                    "reason": str(exc),
                },
            )
            return fallback_snapshot(latitude, longitude, hour)

        self._store_best_effort(key, snapshot, context)
        return snapshot

    def get_forecast(self, latitude: float, longitude: float) -> Forecast:
        """High/low over the next 24 hours; zeros when unavailable."""
        if self.provider is None:
            return Forecast(high=0.0, low=0.0)

        try:
            samples = self.provider.fetch_forecast(latitude, longitude)
        except WeatherProviderError as exc:
            logger.warning(
                "Forecast lookup failed",
                extra={
                    "latitude": latitude,
                    "longitude": longitude,
                    "status_code": exc.status_code,
                    "reason": str(exc),
                },
            )
            return Forecast(high=0.0, low=0.0)

        temps = [
            value
            for value in map(sample_temperature, samples[:FORECAST_WINDOW_SAMPLES])
            if value is not None
        ]
        if not temps:
            return Forecast(high=0.0, low=0.0)
        return Forecast(high=max(temps), low=min(temps))

    def get_cached_weather_for_dates(
        self, latitude: float, longitude: float, dates: Iterable[date]
    ) -> Dict[date, Optional[WeatherSnapshot]]:
        """Fresh cached snapshots for one location on several days.

        Each day maps to its most recently cached record (any hour) or
        ``None``. A failed cache read is logged and yields an empty mapping.
        """
        wanted = list(dict.fromkeys(dates))
        location = CacheKey.build(latitude, longitude, date.min, 0, PROVIDER_SOURCE)
        now = self._clock()
        try:
            records = self.cache.scan()
        except Exception as exc:
            logger.warning(
                "Weather cache read failed",
                extra={"latitude": latitude, "longitude": longitude, "reason": str(exc)},
            )
            return {}

        latest: Dict[date, CacheRecord] = {}
        for record in records:
            if (
                record.latitude != location.latitude
                or record.longitude != location.longitude
                or record.source != PROVIDER_SOURCE
                or record.forecast_date not in wanted
                or record.is_expired(now)
            ):
                continue
            current = latest.get(record.forecast_date)
            if current is None or record.cached_at > current.cached_at:
                latest[record.forecast_date] = record

        return {
            day: latest[day].snapshot if day in latest else None for day in wanted
        }

    def geocode(self, address: str) -> Optional[tuple[float, float]]:
        if self.provider is None:
            return None
        try:
            return self.provider.geocode(address)
        except WeatherProviderError as exc:
            logger.warning("Geocoding failed", extra={"reason": str(exc)})
            return None

    def clean_expired_cache(self) -> int:
        deleted = self.cache.delete_expired(self._clock())
        logger.info("Removed expired weather cache records", extra={"event_count": deleted})
        return deleted

    def cache_stats(self) -> CacheStats:
        now = self._clock()
        records = self.cache.scan()
        by_date = Counter(record.forecast_date.isoformat() for record in records)
        dates = [record.forecast_date for record in records]
        return CacheStats(
            total_records=len(records),
            expired_records=sum(1 for record in records if record.is_expired(now)),
            records_by_date=dict(sorted(by_date.items())),
            oldest_date=min(dates) if dates else None,
            newest_date=max(dates) if dates else None,
            unique_locations=len({(record.latitude, record.longitude) for record in records}),
        )

    def _resolve_moment(self, when: Moment) -> tuple[date, int]:
        if when is None:
            now = self._clock()
            return now.date(), now.hour
        if isinstance(when, str):
            candidate = when.strip()
            if candidate.endswith("Z"):
                candidate = candidate[:-1] + "+00:00"
            when = datetime.fromisoformat(candidate)
        if isinstance(when, datetime):
            if when.tzinfo is not None:
                when = when.astimezone(timezone.utc)
            return when.date(), when.hour
        return when, 0

    def _read_cache(self, key: CacheKey, context: dict) -> Optional[CacheRecord]:
        try:
            return self.cache.get_fresh(key, self._clock())
        except Exception as exc:
            logger.warning("Weather cache read failed", extra={**context, "reason": str(exc)})
            return None

    def _forecast_or_empty(
        self, latitude: float, longitude: float, context: dict
    ) -> list[Mapping[str, Any]]:
        try:
            return self.provider.fetch_forecast(latitude, longitude)
        except WeatherProviderError as exc:
            logger.info(
                "Forecast unavailable; trend defaults to steady",
                extra={**context, "status_code": exc.status_code, "reason": str(exc)},
            )
            return []

    def _store_best_effort(self, key: CacheKey, snapshot: WeatherSnapshot, context: dict) -> None:
        """Upsert the snapshot; a failed write is logged and never propagated."""
        now = self._clock()
        try:
            self.cache.upsert(
                CacheRecord(
                    latitude=key.latitude,
                    longitude=key.longitude,
                    forecast_date=key.forecast_date,
                    hour=key.hour,
                    source=key.source,
                    snapshot=snapshot,
                    cached_at=now,
                    expires_at=now + self.cache_ttl,
                )
            )
        except Exception as exc:
            logger.warning("Weather cache write failed", extra={**context, "reason": str(exc)})


@lru_cache
def build_default_resolver() -> WeatherResolver:
    """Factory that wires the resolver with the default cache and provider."""
    settings = get_settings()
    return WeatherResolver(
        cache=build_default_cache(),
        provider=build_default_provider(settings),
        cache_ttl=timedelta(minutes=settings.cache_ttl_minutes),
    )
