from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_weather(payload: Dict[str, Any]) -> None:
    echo_heading("Weather")
    echo_key_values(
        [
            ("temperature", payload.get("temperature")),
            ("conditions", payload.get("conditions")),
            ("precipitation_mm", payload.get("precipitation_mm")),
            ("snowfall_cm", payload.get("snowfall_cm")),
            ("wind_speed_kmh", payload.get("wind_speed_kmh")),
            ("trend", payload.get("trend")),
            ("daytime_high", payload.get("daytime_high")),
            ("daytime_low", payload.get("daytime_low")),
            ("forecast_confidence", payload.get("forecast_confidence")),
            ("source", payload.get("source")),
        ]
    )


def render_forecast(payload: Dict[str, Any]) -> None:
    echo_heading("Next 24 hours")
    echo_key_values([("high", payload.get("high")), ("low", payload.get("low"))])


def render_events(payload: Dict[str, Any]) -> None:
    events = payload.get("events") or []
    echo_heading(f"Tracking events ({len(events)})")
    if not events:
        typer.echo("No events matched.")
        return
    for event in events:
        distance_m = (event.get("distance_km") or 0.0) * 1000
        typer.echo(
            f"  - {event.get('timestamp')} {event.get('event_type')} "
            f"vehicle={event.get('vehicle_id') or '-'} distance={distance_m:.0f}m"
        )


def render_summary(payload: Dict[str, Any]) -> None:
    echo_heading("Location Summary")
    echo_key_values(
        [
            ("total_events", payload.get("total_events")),
            ("unique_vehicles", payload.get("unique_vehicles")),
        ]
    )
    by_type = payload.get("events_by_type") or {}
    if by_type:
        typer.echo("events_by_type:")
        for event_type, count in by_type.items():
            typer.echo(f"  - {event_type}: {count}")

    time_range = payload.get("time_range")
    typer.echo()
    echo_heading("Time Range")
    if time_range:
        echo_key_values(
            [("earliest", time_range.get("earliest")), ("latest", time_range.get("latest"))]
        )
    else:
        typer.echo("No events recorded.")


def render_cache_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Weather Cache")
    echo_key_values(
        [
            ("total_records", payload.get("total_records")),
            ("expired_records", payload.get("expired_records")),
            ("unique_locations", payload.get("unique_locations")),
            ("oldest_date", payload.get("oldest_date")),
            ("newest_date", payload.get("newest_date")),
        ]
    )
    by_date = payload.get("records_by_date") or {}
    if by_date:
        typer.echo("records_by_date:")
        for day, count in by_date.items():
            typer.echo(f"  - {day}: {count}")
