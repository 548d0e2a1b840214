"""Transient query models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence


DEFAULT_RADIUS_KM = 0.1
COORDINATE_PRECISION = 2


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Identity of a weather cache record.

    Coordinates are rounded to two decimal places (roughly 1 km) so nearby
    sites share cache entries.
    """

    latitude: float
    longitude: float
    forecast_date: date
    hour: int
    source: str

    @classmethod
    def build(
        cls, latitude: float, longitude: float, day: date, hour: int, source: str
    ) -> "CacheKey":
        return cls(
            latitude=round(latitude, COORDINATE_PRECISION),
            longitude=round(longitude, COORDINATE_PRECISION),
            forecast_date=day,
            hour=hour,
            source=source,
        )

    def as_string(self) -> str:
        return (
            f"weather_{self.latitude}_{self.longitude}_"
            f"{self.forecast_date.isoformat()}_{self.hour:02d}_{self.source}"
        )


@dataclass(slots=True)
class LocationQuery:
    """Parameters for finding tracking events near a point on a UTC day."""

    latitude: float
    longitude: float
    date: date
    radius_km: float = DEFAULT_RADIUS_KM
    event_types: Optional[Sequence[str]] = None
