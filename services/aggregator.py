"""Aggregation logic for matched tracking events."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from app.schemas import LocationSummary, TimeRange, TrackingEvent


class EventAggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def summarize(self, events: Iterable[TrackingEvent]) -> LocationSummary:
        total = 0
        events_by_type: dict[str, int] = {}
        vehicles: set[str] = set()
        earliest: Optional[datetime] = None
        latest: Optional[datetime] = None

        for event in events:
            total += 1
            events_by_type[event.event_type] = events_by_type.get(event.event_type, 0) + 1

            if event.vehicle_id:
                vehicles.add(event.vehicle_id)

            if earliest is None or event.timestamp < earliest:
                earliest = event.timestamp
            if latest is None or event.timestamp > latest:
                latest = event.timestamp

        time_range = None
        if earliest is not None and latest is not None:
            time_range = TimeRange(earliest=earliest, latest=latest)

        return LocationSummary(
            total_events=total,
            events_by_type=events_by_type,
            unique_vehicles=len(vehicles),
            time_range=time_range,
        )
