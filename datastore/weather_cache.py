from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Optional

from app.schemas import CacheRecord
from datastore.json_table import JsonTable
from models.records import CacheKey
from settings import get_settings


def _key_for(record: CacheRecord) -> str:
    return CacheKey(
        latitude=record.latitude,
        longitude=record.longitude,
        forecast_date=record.forecast_date,
        hour=record.hour,
        source=record.source,
    ).as_string()


class WeatherCacheTable(JsonTable[CacheRecord]):
    """Weather cache with upsert-by-key semantics and optional JSON persistence.

    Reads never delete: an expired record is simply not returned by
    :meth:`get_fresh` until :meth:`delete_expired` sweeps it. ``scan`` returns
    expired records too.
    """

    model = CacheRecord

    def upsert(self, record: CacheRecord) -> None:
        with self._lock:
            self._items[_key_for(record)] = record.model_copy(deep=True)
            self._persist()

    def get_fresh(self, key: CacheKey, now: datetime) -> Optional[CacheRecord]:
        with self._lock:
            record = self._items.get(key.as_string())
            if record is None or record.is_expired(now):
                return None
            return record.model_copy(deep=True)

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [key for key, record in self._items.items() if record.is_expired(now)]
            for key in expired:
                del self._items[key]
            if expired:
                self._persist()
            return len(expired)


@lru_cache
def build_default_cache(
    name: str = "weather_cache",
    path: Optional[str] = None,
) -> WeatherCacheTable:
    settings = get_settings()
    cache_path = settings.cache_persistence_path if path is None else path
    persistence = Path(cache_path) if cache_path else None
    return WeatherCacheTable(name=name, persistence_path=persistence)
