"""Ingestion of fleet tracking webhook payloads."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, Mapping, Optional
from uuid import uuid4

from app.schemas import TrackingEvent
from datastore.tracking_events import TrackingEventTable, build_default_events_table
from settings import get_settings

logger = logging.getLogger(__name__)

_EVENT_FAMILIES = {
    "ARRIVED": "arrival",
    "STOPPED": "arrival",
    "DRIVING": "departure",
    "DEPARTED": "departure",
    "SPEEDING": "speeding",
    "MAINTENANCE": "maintenance",
    "JOB_COMPLETED": "job_completion",
}


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_event_timestamp(value: Any, default: datetime) -> datetime:
    """Parse ``YYYY-MM-DD HH:MM:SS`` or ISO-8601 text as UTC."""
    if not isinstance(value, str) or not value.strip():
        return default

    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError(f"Invalid event timestamp {value!r}.") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class WebhookIngestor:
    """Stores tracking webhook events and marks them processed."""

    def __init__(
        self,
        table: TrackingEventTable,
        source: str = "ram_tracking",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.table = table
        self.source = source
        self._clock = clock

    def ingest(self, payload: Mapping[str, Any]) -> TrackingEvent:
        if not isinstance(payload, Mapping):
            raise ValueError("Invalid payload")

        now = self._clock()
        event = TrackingEvent(
            id=str(uuid4()),
            source=self.source,
            event_type=_optional_str(payload.get("vehicleEvent")) or "unknown",
            vehicle_id=_optional_str(payload.get("vehicleId")),
            location=_optional_str(payload.get("location")),
            latitude=_optional_float(payload.get("latitude")),
            longitude=_optional_float(payload.get("longitude")),
            speed=_optional_float(payload.get("speedMph")),
            timestamp=parse_event_timestamp(payload.get("dateTime"), default=now),
            raw_payload=dict(payload),
            processed=False,
            created_at=now,
        )
        self.table.put_item(event)
        context = {
            "event_id": event.id,
            "event_type": event.event_type,
            "vehicle_id": event.vehicle_id,
        }
        logger.info("Tracking webhook stored", extra=context)

        try:
            self._dispatch(event, payload)
            return self.table.mark_processed(event.id, self._clock())
        except Exception as exc:
            # Receipt is still acknowledged; the stored event stays unprocessed.
            logger.exception("Tracking event processing failed", extra={**context, "reason": str(exc)})
            return event

    def _dispatch(self, event: TrackingEvent, payload: Mapping[str, Any]) -> None:
        family = _EVENT_FAMILIES.get(event.event_type.upper())
        context: Dict[str, Any] = {
            "event_id": event.id,
            "event_type": event.event_type,
            "vehicle_id": event.vehicle_id,
        }
        if family is None:
            logger.info("Unknown tracking event type", extra=context)
            return
        if family == "speeding":
            logger.warning(
                "Vehicle %s exceeded the speed limit at %s (%s mph)",
                payload.get("vehicleRegistration"),
                event.location,
                event.speed,
                extra=context,
            )
            return
        logger.info(
            "Vehicle %s %s at %s",
            payload.get("vehicleRegistration"),
            family.replace("_", " "),
            event.location,
            extra=context,
        )


@lru_cache
def build_default_ingestor() -> WebhookIngestor:
    return WebhookIngestor(
        table=build_default_events_table(),
        source=get_settings().tracking_source,
    )
