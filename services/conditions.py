"""Translate provider weather vocabulary and samples into report fields."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Sequence

from app.schemas import WeatherCondition, WeatherTrend

TREND_THRESHOLD_C = 2.0
BASE_CONFIDENCE = 0.9
MIN_CONFIDENCE = 0.1
MISSING_CONDITION_PENALTY = 0.2
MISSING_MEASUREMENTS_PENALTY = 0.3
EMPTY_FORECAST_PENALTY = 0.1

ConditionPredicate = Callable[[str, str], bool]


def _description_has(*phrases: str) -> ConditionPredicate:
    return lambda _main, description: any(phrase in description for phrase in phrases)


def _either_has(*phrases: str) -> ConditionPredicate:
    return lambda main, description: any(
        phrase in main or phrase in description for phrase in phrases
    )


# Evaluated top to bottom; specific phrases must precede the generic ones
# they contain ("heavy snow" before "snow").
CONDITION_RULES: tuple[tuple[ConditionPredicate, WeatherCondition], ...] = (
    (_description_has("freezing"), WeatherCondition.freezing_rain),
    (_description_has("sleet"), WeatherCondition.sleet),
    (_description_has("heavy snow", "blizzard"), WeatherCondition.heavy_snow),
    (_description_has("light snow", "snow shower"), WeatherCondition.light_snow),
    (_description_has("drifting", "blowing snow"), WeatherCondition.drifting_snow),
    (_either_has("snow"), WeatherCondition.light_snow),
    (_either_has("rain", "drizzle"), WeatherCondition.rain),
)


def map_condition(main: Optional[str], description: Optional[str]) -> WeatherCondition:
    main_lower = (main or "").lower()
    description_lower = (description or "").lower()
    for predicate, condition in CONDITION_RULES:
        if predicate(main_lower, description_lower):
            return condition
    return WeatherCondition.clear


def sample_temperature(sample: Mapping[str, Any]) -> Optional[float]:
    main = sample.get("main")
    if not isinstance(main, Mapping):
        return None
    value = main.get("temp")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def calculate_trend(current: float, forecast: Sequence[Mapping[str, Any]]) -> WeatherTrend:
    if not forecast:
        return WeatherTrend.steady

    future = sample_temperature(forecast[0])
    if future is None:
        return WeatherTrend.steady

    difference = future - current
    if difference > TREND_THRESHOLD_C:
        return WeatherTrend.up
    if difference < -TREND_THRESHOLD_C:
        return WeatherTrend.down
    return WeatherTrend.steady


def calculate_confidence(
    has_condition: bool, has_measurements: bool, forecast_count: int
) -> float:
    confidence = BASE_CONFIDENCE
    if not has_condition:
        confidence -= MISSING_CONDITION_PENALTY
    if not has_measurements:
        confidence -= MISSING_MEASUREMENTS_PENALTY
    if forecast_count == 0:
        confidence -= EMPTY_FORECAST_PENALTY
    return round(max(MIN_CONFIDENCE, confidence), 2)
