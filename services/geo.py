"""Great-circle helpers for matching tracking events to sites."""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LATITUDE = 111.32

# Below this cos(latitude) a longitude band would exceed the whole globe.
_MIN_COS_LATITUDE = 1e-9


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Latitude/longitude box; ``min_longitude > max_longitude`` wraps past ±180°."""

    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.min_longitude > self.max_longitude

    @property
    def spans_all_longitudes(self) -> bool:
        return self.min_longitude <= -180.0 and self.max_longitude >= 180.0

    def contains(self, latitude: float, longitude: float) -> bool:
        if not self.min_latitude <= latitude <= self.max_latitude:
            return False
        if self.crosses_antimeridian:
            return longitude >= self.min_longitude or longitude <= self.max_longitude
        return self.min_longitude <= longitude <= self.max_longitude


def _normalize_longitude(longitude: float) -> float:
    if longitude < -180.0:
        return longitude + 360.0
    if longitude > 180.0:
        return longitude - 360.0
    return longitude


def bounding_box(latitude: float, longitude: float, radius_km: float) -> BoundingBox:
    """Approximate box enclosing the circle of ``radius_km`` around a point.

    The box is a superset of the circle; its corners lie outside it. A
    circle reaching a pole covers every longitude, and one straddling the
    antimeridian yields a wrapped box.
    """
    lat_range = radius_km / KM_PER_DEGREE_LATITUDE
    min_latitude = max(-90.0, latitude - lat_range)
    max_latitude = min(90.0, latitude + lat_range)

    cos_lat = math.cos(math.radians(latitude))
    reaches_pole = latitude + lat_range >= 90.0 or latitude - lat_range <= -90.0
    if reaches_pole or abs(cos_lat) < _MIN_COS_LATITUDE:
        lon_range = 180.0
    else:
        lon_range = radius_km / (KM_PER_DEGREE_LATITUDE * abs(cos_lat))

    if lon_range >= 180.0:
        return BoundingBox(min_latitude, max_latitude, -180.0, 180.0)
    return BoundingBox(
        min_latitude=min_latitude,
        max_latitude=max_latitude,
        min_longitude=_normalize_longitude(longitude - lon_range),
        max_longitude=_normalize_longitude(longitude + lon_range),
    )


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
