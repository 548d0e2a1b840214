from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_cache_stats,
    render_events,
    render_forecast,
    render_summary,
    render_weather,
)
from models.records import DEFAULT_RADIUS_KM


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for querying the site conditions service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

_DATE_FORMATS = ["%Y-%m-%d"]


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("weather")
def weather_command(
    ctx: typer.Context,
    lat: float = typer.Option(..., "--lat", min=-90, max=90, help="Latitude in decimal degrees."),
    lon: float = typer.Option(..., "--lon", min=-180, max=180, help="Longitude in decimal degrees."),
    day: Optional[datetime] = typer.Option(None, "--date", formats=_DATE_FORMATS),
    hour: Optional[int] = typer.Option(None, "--hour", min=0, max=23),
) -> None:
    """Show resolved weather for a site."""
    state = _get_state(ctx)
    payload = state.client.get_weather(lat, lon, day.date() if day else None, hour)
    render_weather(payload)


@app.command("forecast")
def forecast_command(
    ctx: typer.Context,
    lat: float = typer.Option(..., "--lat", min=-90, max=90, help="Latitude in decimal degrees."),
    lon: float = typer.Option(..., "--lon", min=-180, max=180, help="Longitude in decimal degrees."),
) -> None:
    """Show the high and low temperature for the next 24 hours."""
    state = _get_state(ctx)
    render_forecast(state.client.get_forecast(lat, lon))


@app.command("nearby")
def nearby_command(
    ctx: typer.Context,
    lat: float = typer.Option(..., "--lat", min=-90, max=90, help="Latitude in decimal degrees."),
    lon: float = typer.Option(..., "--lon", min=-180, max=180, help="Longitude in decimal degrees."),
    day: datetime = typer.Option(..., "--date", formats=_DATE_FORMATS),
    radius_km: float = typer.Option(DEFAULT_RADIUS_KM, "--radius-km", min=0.001),
    event_type: Optional[List[str]] = typer.Option(None, "--event-type"),
) -> None:
    """List tracking events recorded near a site on a UTC day."""
    state = _get_state(ctx)
    payload = state.client.find_nearby(lat, lon, day.date(), radius_km, event_type or ())
    render_events(payload)


@app.command("summary")
def summary_command(
    ctx: typer.Context,
    lat: float = typer.Option(..., "--lat", min=-90, max=90, help="Latitude in decimal degrees."),
    lon: float = typer.Option(..., "--lon", min=-180, max=180, help="Longitude in decimal degrees."),
    day: datetime = typer.Option(..., "--date", formats=_DATE_FORMATS),
    radius_km: float = typer.Option(DEFAULT_RADIUS_KM, "--radius-km", min=0.001),
    event_type: Optional[List[str]] = typer.Option(None, "--event-type"),
) -> None:
    """Summarise tracking events recorded near a site on a UTC day."""
    state = _get_state(ctx)
    payload = state.client.get_summary(lat, lon, day.date(), radius_km, event_type or ())
    render_summary(payload)


@app.command("cache-stats")
def cache_stats_command(ctx: typer.Context) -> None:
    """Show weather cache statistics."""
    state = _get_state(ctx)
    render_cache_stats(state.client.get_cache_stats())


@app.command("cache-clean")
def cache_clean_command(ctx: typer.Context) -> None:
    """Remove expired weather cache records."""
    state = _get_state(ctx)
    payload = state.client.clean_cache()
    typer.secho(
        f"Removed {payload.get('deleted_records')} expired records.", fg=typer.colors.GREEN
    )
