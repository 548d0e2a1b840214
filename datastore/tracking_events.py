from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

from app.schemas import TrackingEvent
from datastore.json_table import JsonTable
from settings import get_settings


class TrackingEventTable(JsonTable[TrackingEvent]):
    """Append-mostly store of tracking events with range and equality filters."""

    model = TrackingEvent

    def put_item(self, item: TrackingEvent) -> None:
        with self._lock:
            self._items[item.id] = item.model_copy(deep=True)
            self._persist()

    def get_item(self, key: str) -> Optional[TrackingEvent]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def query(
        self,
        *,
        source: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        min_latitude: Optional[float] = None,
        max_latitude: Optional[float] = None,
        min_longitude: Optional[float] = None,
        max_longitude: Optional[float] = None,
        event_types: Optional[Iterable[str]] = None,
    ) -> list[TrackingEvent]:
        """Return events matching every given filter, oldest first.

        ``start`` is inclusive and ``end`` exclusive. Coordinate bounds are
        inclusive and exclude events without a position.
        """

        wanted_types = set(event_types) if event_types else None
        has_bounds = any(
            bound is not None
            for bound in (min_latitude, max_latitude, min_longitude, max_longitude)
        )

        def matches(item: TrackingEvent) -> bool:
            if source is not None and item.source != source:
                return False
            if start is not None and item.timestamp < start:
                return False
            if end is not None and item.timestamp >= end:
                return False
            if wanted_types is not None and item.event_type not in wanted_types:
                return False
            if has_bounds:
                if item.latitude is None or item.longitude is None:
                    return False
                if min_latitude is not None and item.latitude < min_latitude:
                    return False
                if max_latitude is not None and item.latitude > max_latitude:
                    return False
                if min_longitude is not None and item.longitude < min_longitude:
                    return False
                if max_longitude is not None and item.longitude > max_longitude:
                    return False
            return True

        with self._lock:
            selected = [item.model_copy(deep=True) for item in self._items.values() if matches(item)]
        return sorted(selected, key=lambda item: item.timestamp)

    def mark_processed(self, key: str, processed_at: datetime) -> TrackingEvent:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                raise KeyError(f"Tracking event {key!r} not found in table {self.name!r}.")
            updated = item.model_copy(update={"processed": True, "processed_at": processed_at})
            self._items[key] = updated
            self._persist()
            return updated.model_copy(deep=True)


@lru_cache
def build_default_events_table(
    name: str = "webhook_events",
    path: Optional[str] = None,
) -> TrackingEventTable:
    settings = get_settings()
    table_path = settings.events_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return TrackingEventTable(name=name, persistence_path=persistence)
