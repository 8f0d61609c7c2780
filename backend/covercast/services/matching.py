"""
Condition matching between patterns and day contexts.

Discovery uses these predicates to split days into condition/comparison
groups, the validator re-applies them to a fresh window, and the prediction
engine uses ``factor_matches`` to decide whether a pattern applies to a
forecast day. Keeping one definition means all three agree.
"""

from typing import Optional

from covercast.domain.context import ContextSnapshot
from covercast.domain.patterns import Condition, ExternalFactor

FRIDAY = 4
MONDAY = 0


def is_perfect_weekend_with_crowd(day: ContextSnapshot) -> bool:
    return bool(
        day.weather
        and day.is_weekend
        and day.weather.is_perfect
        and (day.has_major_game or day.has_major_event)
    )


def is_quiet_weekday(day: ContextSnapshot) -> bool:
    """Weekday with no major game or event and no rain."""
    return bool(
        day.weather
        and not day.is_weekend
        and not day.has_major_game
        and not day.has_major_event
        and not day.is_raining
    )


def is_rainy_quiet_friday(day: ContextSnapshot) -> bool:
    return bool(
        day.weather
        and day.date.weekday() == FRIDAY
        and day.is_raining
        and not day.has_major_game
        and not day.has_major_event
    )


def is_dry_friday(day: ContextSnapshot) -> bool:
    return bool(day.weather and day.date.weekday() == FRIDAY and not day.is_raining)


def is_cold_monday(day: ContextSnapshot) -> bool:
    return bool(day.weather and day.date.weekday() == MONDAY and day.weather.temperature < 50)


def is_mild_monday(day: ContextSnapshot) -> bool:
    return bool(
        day.weather
        and day.date.weekday() == MONDAY
        and 50 <= day.weather.temperature < 80
    )


def factor_matches(factor: ExternalFactor, day: ContextSnapshot) -> bool:
    """Does ``day`` satisfy the pattern's condition?"""
    condition = factor.condition
    weather = day.weather
    
    if condition == Condition.TEMPERATURE:
        if weather is None or factor.threshold is None:
            return False
        if factor.operator == "below":
            return weather.temperature < factor.threshold
        return weather.temperature > factor.threshold
    if condition == Condition.PRECIPITATION:
        return day.is_raining
    if condition == Condition.WEATHER_QUALITY:
        return bool(weather and weather.is_perfect)
    if condition == Condition.MENU_WEATHER:
        return bool(weather and weather.bucket == factor.weather_condition)
    if condition == Condition.LOCAL_EVENT:
        return day.has_major_event
    if condition == Condition.SPORTS_GAME:
        return day.has_major_game
    if condition == Condition.HOLIDAY:
        return day.holiday is not None
    if condition == Condition.WEEKEND_PERFECT_EVENT:
        return is_perfect_weekend_with_crowd(day)
    if condition == Condition.RAINY_FRIDAY:
        return is_rainy_quiet_friday(day)
    if condition == Condition.COLD_MONDAY:
        return is_cold_monday(day)
    return False


def comparison_matches(factor: ExternalFactor, day: ContextSnapshot) -> Optional[bool]:
    """
    Is ``day`` in the comparison group the pattern was measured against?
    
    Returns None when the day lacks the context needed to decide.
    """
    condition = factor.condition
    weather = day.weather
    
    needs_weather = condition not in (Condition.LOCAL_EVENT, Condition.SPORTS_GAME, Condition.HOLIDAY)
    if needs_weather and weather is None:
        return None
    
    if condition == Condition.WEATHER_QUALITY:
        return weather.is_poor
    if condition == Condition.WEEKEND_PERFECT_EVENT:
        return is_quiet_weekday(day)
    if condition == Condition.RAINY_FRIDAY:
        return is_dry_friday(day)
    if condition == Condition.COLD_MONDAY:
        return is_mild_monday(day)
    return not factor_matches(factor, day)
