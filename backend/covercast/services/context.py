"""
Per-day context collection for a restaurant.

Fetches weather, major events, nearby games and holidays for every day of a
window. Days are fetched concurrently with a bounded worker pool; provider
failures degrade to the seasonal weather model (weather) or to "nothing
known" (events, sports) instead of failing the run.
"""

from time import perf_counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional

import pytz
from loguru import logger

from covercast.config import Settings, settings as default_settings
from covercast.domain.context import ContextSnapshot, LocalEvent, SportsGame, WeatherSnapshot
from covercast.domain.transactions import RestaurantProfile
from covercast.providers.base import EventsProvider, HolidayProvider, SportsProvider, WeatherProvider
from covercast.providers.holidays import USHolidayCalendar
from covercast.providers.seasonal import SeasonalWeatherModel
from covercast.utils.datetime import get_timezone
from covercast.utils.errors import CoverCastError, MissingLocationError

SPORTS_RADIUS_MILES = 30


class ContextCollector:
    """Builds ``{date: ContextSnapshot}`` maps for discovery, validation and forecasting."""

    def __init__(
        self,
        weather: Optional[WeatherProvider] = None,
        events: Optional[EventsProvider] = None,
        sports: Optional[SportsProvider] = None,
        holidays: Optional[HolidayProvider] = None,
        seasonal: Optional[SeasonalWeatherModel] = None,
        config: Settings = default_settings,
    ):
        self.weather = weather
        self.events = events
        self.sports = sports
        self.holidays = holidays or USHolidayCalendar()
        self.seasonal = seasonal or SeasonalWeatherModel()
        self.config = config

    def collect(self, restaurant: RestaurantProfile, days: Iterable[date]) -> Dict[date, ContextSnapshot]:
        """Context for each day. Restaurants without coordinates get holiday-only snapshots."""
        days = sorted(set(days))
        if not days:
            return {}

        if not restaurant.has_location:
            error = MissingLocationError(
                f"Restaurant {restaurant.id} has no coordinates",
                details={"restaurant_id": restaurant.id},
            )
            logger.warning(f"{error.message}; skipping weather, event and sports context")
            return {d: ContextSnapshot(date=d, holiday=self.holidays.get_holiday(d)) for d in days}

        started = perf_counter()
        snapshots: Dict[date, ContextSnapshot] = {}
        workers = max(1, min(self.config.provider_max_workers, len(days)))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="context") as pool:
            futures = {pool.submit(self._collect_day, restaurant, day): day for day in days}
            for future in as_completed(futures):
                day = futures[future]
                snapshots[day] = future.result()

        fallbacks = sum(1 for s in snapshots.values() if s.weather is not None and s.weather.is_estimated)
        logger.info(
            f"Collected context for restaurant {restaurant.id}: {len(days)} days, "
            f"{fallbacks} seasonal-model days, {perf_counter() - started:.2f}s"
        )
        return {d: snapshots[d] for d in days}

    def collect_forecast(self, restaurant: RestaurantProfile, start: date, days: int = 7) -> Dict[date, ContextSnapshot]:
        """
        Forecast weather plus holidays for ``days`` days from ``start``.

        Days the weather provider has no forecast for keep ``weather=None``;
        seasonal estimates are never presented as a forecast.
        """
        dates = [start + timedelta(days=i) for i in range(days)]
        forecast: Dict[date, WeatherSnapshot] = {}

        if restaurant.has_location and self.weather is not None:
            tz = get_timezone(restaurant.timezone, self.config.default_timezone)
            try:
                for snapshot in self.weather.get_forecast(restaurant.latitude, restaurant.longitude, days + 1):
                    forecast.setdefault(snapshot.timestamp.astimezone(tz).date(), snapshot)
            except CoverCastError as e:
                logger.warning(f"Forecast unavailable for restaurant {restaurant.id}: {e.message}")

        snapshots = {}
        for day in dates:
            snapshots[day] = ContextSnapshot(
                date=day, weather=forecast.get(day), holiday=self.holidays.get_holiday(day)
            )
        missing = sum(1 for s in snapshots.values() if s.weather is None)
        if missing:
            logger.info(f"No weather forecast for {missing} of {days} days for restaurant {restaurant.id}")
        return snapshots

    def _collect_day(self, restaurant: RestaurantProfile, day: date) -> ContextSnapshot:
        tz = get_timezone(restaurant.timezone, self.config.default_timezone)
        return ContextSnapshot(
            date=day,
            weather=self._weather_for(restaurant, day, tz),
            events=tuple(self._events_for(restaurant, day, tz)),
            games=tuple(self._games_for(restaurant, day, tz)),
            holiday=self.holidays.get_holiday(day),
        )

    def _weather_for(self, restaurant: RestaurantProfile, day: date, tz: pytz.BaseTzInfo) -> WeatherSnapshot:
        observed = None
        if self.weather is not None:
            local_noon = tz.localize(datetime.combine(day, time(12)))
            try:
                observed = self.weather.get_historical_weather(
                    restaurant.latitude, restaurant.longitude, local_noon
                )
            except CoverCastError as e:
                logger.warning(f"Historical weather unavailable for {day}: {e.message}")

        if observed is not None:
            return observed
        return self.seasonal.estimate(day, restaurant.latitude)

    def _events_for(self, restaurant: RestaurantProfile, day: date, tz: pytz.BaseTzInfo) -> List[LocalEvent]:
        if self.events is None:
            return []
        try:
            return self.events.get_major_events(restaurant.latitude, restaurant.longitude, day, tz)
        except CoverCastError as e:
            logger.warning(f"Events unavailable for {day}: {e.message}")
            return []

    def _games_for(self, restaurant: RestaurantProfile, day: date, tz: pytz.BaseTzInfo) -> List[SportsGame]:
        if self.sports is None:
            return []
        try:
            return self.sports.get_games_on_date(
                day, restaurant.latitude, restaurant.longitude, SPORTS_RADIUS_MILES, tz
            )
        except CoverCastError as e:
            logger.warning(f"Sports schedule unavailable for {day}: {e.message}")
            return []
