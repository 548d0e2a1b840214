"""Find tracking events recorded near a site on a given day."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional, Sequence

from app.schemas import LocationSummary, TrackingEvent, TrackingEventMatch
from datastore.tracking_events import TrackingEventTable, build_default_events_table
from models.records import LocationQuery
from services.aggregator import EventAggregator
from services.errors import LocationQueryError
from services.geo import bounding_box, haversine_km
from settings import get_settings

logger = logging.getLogger(__name__)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open UTC interval covering ``day``."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class EventLocator:
    """Matches stored tracking events to coordinates.

    Storage failures surface as :class:`LocationQueryError`; an empty result
    always means nothing matched.
    """

    def __init__(
        self,
        table: TrackingEventTable,
        aggregator: EventAggregator,
        source: str = "ram_tracking",
    ) -> None:
        self.table = table
        self.aggregator = aggregator
        self.source = source

    def find_events_by_location_radius(self, query: LocationQuery) -> list[TrackingEventMatch]:
        radius_km = query.radius_km or 0.1
        box = bounding_box(query.latitude, query.longitude, radius_km)
        start, end = day_bounds(query.date)

        bounds = {"min_latitude": box.min_latitude, "max_latitude": box.max_latitude}
        # The store compares raw longitudes, so a wrapped box is checked here.
        if not box.crosses_antimeridian:
            bounds.update(min_longitude=box.min_longitude, max_longitude=box.max_longitude)
        candidates = self._query(
            "Failed to query events by location radius",
            query,
            start=start,
            end=end,
            **bounds,
        )

        matches: list[TrackingEventMatch] = []
        for event in candidates:
            if not box.contains(event.latitude, event.longitude):
                continue
            distance = haversine_km(
                query.latitude, query.longitude, event.latitude, event.longitude
            )
            if distance > radius_km:
                continue
            matches.append(
                TrackingEventMatch(**event.model_dump(), distance_km=distance)
            )

        matches.sort(key=lambda match: match.distance_km)
        logger.debug(
            "Matched tracking events within radius",
            extra={
                "latitude": query.latitude,
                "longitude": query.longitude,
                "radius_km": radius_km,
                "event_count": len(matches),
            },
        )
        return matches

    def find_events_by_exact_location(self, query: LocationQuery) -> list[TrackingEvent]:
        start, end = day_bounds(query.date)
        return self._query(
            "Failed to query events by location",
            query,
            start=start,
            end=end,
            min_latitude=query.latitude,
            max_latitude=query.latitude,
            min_longitude=query.longitude,
            max_longitude=query.longitude,
        )

    def find_events_by_date(
        self, day: date, event_types: Optional[Sequence[str]] = None
    ) -> list[TrackingEvent]:
        start, end = day_bounds(day)
        try:
            return self.table.query(
                source=self.source, start=start, end=end, event_types=event_types
            )
        except Exception as exc:
            logger.exception("Tracking event query failed", extra={"reason": str(exc)})
            raise LocationQueryError("Failed to query events by date") from exc

    def find_closest_events(
        self,
        latitude: float,
        longitude: float,
        day: date,
        max_distance_km: float = 1.0,
        limit: int = 10,
    ) -> list[TrackingEventMatch]:
        query = LocationQuery(
            latitude=latitude, longitude=longitude, date=day, radius_km=max_distance_km
        )
        return self.find_events_by_location_radius(query)[:limit]

    def get_location_summary(self, query: LocationQuery) -> LocationSummary:
        return self.aggregator.summarize(self.find_events_by_location_radius(query))

    def _query(self, message: str, query: LocationQuery, **filters) -> list[TrackingEvent]:
        try:
            return self.table.query(
                source=self.source, event_types=query.event_types, **filters
            )
        except Exception as exc:
            logger.exception(
                "Tracking event query failed",
                extra={
                    "latitude": query.latitude,
                    "longitude": query.longitude,
                    "reason": str(exc),
                },
            )
            raise LocationQueryError(message) from exc


@lru_cache
def build_default_locator() -> EventLocator:
    """Factory that wires the locator with the default event table."""
    return EventLocator(
        table=build_default_events_table(),
        aggregator=EventAggregator(),
        source=get_settings().tracking_source,
    )
