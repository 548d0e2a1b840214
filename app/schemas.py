"""Pydantic schemas shared by the HTTP API layer and the datastores."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class WeatherCondition(str, Enum):
    """Internal weather vocabulary used by site reports."""

    clear = "clear"
    rain = "rain"
    light_snow = "lightSnow"
    heavy_snow = "heavySnow"
    drifting_snow = "driftingSnow"
    freezing_rain = "freezingRain"
    sleet = "sleet"


class WeatherTrend(str, Enum):
    """Temperature direction over the next forecast sample."""

    up = "up"
    down = "down"
    steady = "steady"


class WeatherSnapshot(BaseModel):
    """Resolved conditions for a location and hour."""

    temperature: float = Field(..., description="Air temperature in degrees Celsius.")
    conditions: WeatherCondition
    precipitation_mm: float = Field(default=0.0, ge=0)
    snowfall_cm: float = Field(default=0.0, ge=0)
    wind_speed_kmh: float = Field(default=0.0, ge=0)
    trend: WeatherTrend = WeatherTrend.steady
    forecast_confidence: float = Field(..., ge=0, le=1)
    daytime_high: Optional[float] = None
    daytime_low: Optional[float] = None
    source: str = "openweathermap"


class Forecast(BaseModel):
    """High and low temperature over the next 24 hours."""

    high: float
    low: float


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class CacheRecord(BaseModel):
    """A cached weather snapshot keyed by rounded location, date and hour."""

    latitude: float
    longitude: float
    forecast_date: date
    hour: int = Field(..., ge=0, le=23)
    source: str
    snapshot: WeatherSnapshot
    cached_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class CacheStats(BaseModel):
    """Cache occupancy figures for monitoring."""

    total_records: int = Field(..., ge=0)
    expired_records: int = Field(..., ge=0)
    records_by_date: Dict[str, int] = Field(default_factory=dict)
    oldest_date: Optional[date] = None
    newest_date: Optional[date] = None
    unique_locations: int = Field(default=0, ge=0)


class CacheCleanupResult(BaseModel):
    deleted_records: int = Field(..., ge=0)
    cleaned_at: datetime


class TrackingEvent(BaseModel):
    """A vehicle tracking event as received from the fleet tracking webhook."""

    id: str
    source: str
    event_type: str
    vehicle_id: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    speed: Optional[float] = None
    timestamp: datetime
    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    processed: bool = False
    processed_at: Optional[datetime] = None
    created_at: datetime


class TrackingEventMatch(TrackingEvent):
    """A tracking event annotated with its distance from the queried point."""

    distance_km: float = Field(..., ge=0)


class TimeRange(BaseModel):
    earliest: datetime
    latest: datetime


class LocationSummary(BaseModel):
    """Aggregate view over the events matched near a location."""

    total_events: int = Field(..., ge=0)
    events_by_type: Dict[str, int] = Field(default_factory=dict)
    unique_vehicles: int = Field(default=0, ge=0)
    time_range: Optional[TimeRange] = None


class WebhookAck(BaseModel):
    """Response returned to the tracking provider after ingesting an event."""

    success: bool = True
    message: str = "Webhook received and processed"
    event_id: str


class EventList(BaseModel):
    events: List[TrackingEventMatch] = Field(default_factory=list)
