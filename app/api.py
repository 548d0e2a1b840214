"""HTTP route definitions for the service."""

from __future__ import annotations

import hmac
from datetime import date, datetime, time, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.schemas import (
    CacheCleanupResult,
    CacheStats,
    Coordinates,
    EventList,
    Forecast,
    LocationSummary,
    WeatherSnapshot,
    WebhookAck,
)
from models.records import DEFAULT_RADIUS_KM, LocationQuery
from services.errors import LocationQueryError
from services.ingest import WebhookIngestor, build_default_ingestor
from services.locator import EventLocator, build_default_locator
from services.weather import WeatherResolver, build_default_resolver
from settings import get_settings

router = APIRouter()

_SECRET_HEADERS = ("auth", "x-webhook-secret", "x-ram-secret")


def get_resolver() -> WeatherResolver:
    return build_default_resolver()


def get_locator() -> EventLocator:
    return build_default_locator()


def get_ingestor() -> WebhookIngestor:
    return build_default_ingestor()


def _location_query(
    lat: float = Query(..., ge=-90, le=90, description="Latitude in decimal degrees."),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in decimal degrees."),
    day: date = Query(..., alias="date", description="UTC day to search (YYYY-MM-DD)."),
    radius_km: float = Query(DEFAULT_RADIUS_KM, gt=0, le=100),
    event_type: Optional[List[str]] = Query(None, description="Restrict to these event types."),
) -> LocationQuery:
    return LocationQuery(
        latitude=lat,
        longitude=lon,
        date=day,
        radius_km=radius_km,
        event_types=event_type or None,
    )


@router.get(
    "/weather",
    response_model=WeatherSnapshot,
    summary="Resolve weather conditions for coordinates and an optional date/hour.",
)
def get_weather(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    day: Optional[date] = Query(None, alias="date"),
    hour: Optional[int] = Query(None, ge=0, le=23),
    resolver: WeatherResolver = Depends(get_resolver),
) -> WeatherSnapshot:
    when = None
    if day is not None:
        when = datetime.combine(day, time(hour=hour or 0), tzinfo=timezone.utc)
    return resolver.get_current_weather(lat, lon, when)


@router.get(
    "/weather/forecast",
    response_model=Forecast,
    summary="High and low temperature over the next 24 hours.",
)
def get_forecast(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    resolver: WeatherResolver = Depends(get_resolver),
) -> Forecast:
    return resolver.get_forecast(lat, lon)


@router.get(
    "/weather/geocode",
    response_model=Coordinates,
    summary="Look up coordinates for a street address.",
)
def geocode_address(
    address: str = Query(..., min_length=1),
    resolver: WeatherResolver = Depends(get_resolver),
) -> Coordinates:
    result = resolver.geocode(address)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No coordinates found for {address!r}.",
        )
    latitude, longitude = result
    return Coordinates(latitude=latitude, longitude=longitude)


@router.get(
    "/weather/cache",
    response_model=CacheStats,
    summary="Weather cache statistics.",
)
async def weather_cache_stats(
    resolver: WeatherResolver = Depends(get_resolver),
) -> CacheStats:
    return resolver.cache_stats()


@router.delete(
    "/weather/cache",
    response_model=CacheCleanupResult,
    summary="Remove expired weather cache records.",
)
async def clean_weather_cache(
    resolver: WeatherResolver = Depends(get_resolver),
) -> CacheCleanupResult:
    deleted = resolver.clean_expired_cache()
    return CacheCleanupResult(deleted_records=deleted, cleaned_at=datetime.now(timezone.utc))


@router.get(
    "/tracking/events/nearby",
    response_model=EventList,
    summary="Tracking events within a radius of a point on a UTC day, nearest first.",
)
async def nearby_events(
    query: LocationQuery = Depends(_location_query),
    locator: EventLocator = Depends(get_locator),
) -> EventList:
    try:
        events = locator.find_events_by_location_radius(query)
    except LocationQueryError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    return EventList(events=events)


@router.get(
    "/tracking/events/summary",
    response_model=LocationSummary,
    summary="Summary statistics for tracking events near a point.",
)
async def events_summary(
    query: LocationQuery = Depends(_location_query),
    locator: EventLocator = Depends(get_locator),
) -> LocationSummary:
    try:
        return locator.get_location_summary(query)
    except LocationQueryError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc


@router.post(
    "/tracking/webhooks",
    response_model=WebhookAck,
    summary="Receive a vehicle tracking webhook event.",
)
async def receive_tracking_webhook(
    request: Request,
    ingestor: WebhookIngestor = Depends(get_ingestor),
) -> WebhookAck:
    secret = get_settings().webhook_secret
    if secret:
        provided = next(
            (request.headers[name] for name in _SECRET_HEADERS if name in request.headers),
            "",
        )
        if not hmac.compare_digest(provided.encode(), secret.encode()):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    try:
        event = ingestor.ingest(payload)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return WebhookAck(event_id=event.id)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
