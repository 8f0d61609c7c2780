"""
Context-provider contracts.

Discovery and prediction only see these interfaces; the HTTP-backed
implementations live beside this module and tests substitute fakes.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

import pytz

from covercast.domain.context import Holiday, LocalEvent, SportsGame, WeatherSnapshot


class WeatherProvider(ABC):
    
    @abstractmethod
    def get_current_weather(self, lat: float, lon: float) -> Optional[WeatherSnapshot]:
        """Current conditions, or None when unavailable."""
    
    @abstractmethod
    def get_historical_weather(self, lat: float, lon: float, timestamp: datetime) -> Optional[WeatherSnapshot]:
        """Conditions at ``timestamp``, or None when the provider has no data."""
    
    @abstractmethod
    def get_forecast(self, lat: float, lon: float, days: int = 7) -> List[WeatherSnapshot]:
        """One snapshot per upcoming local day, soonest first."""


class EventsProvider(ABC):
    
    @abstractmethod
    def get_local_events(
        self,
        lat: float,
        lon: float,
        radius_miles: float = 5,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        tz: pytz.BaseTzInfo = pytz.UTC,
    ) -> List[LocalEvent]:
        """Events within ``radius_miles`` that start in ``[start, end)``; date-only starts are read in ``tz``."""
    
    @abstractmethod
    def get_major_events(
        self, lat: float, lon: float, day: date, tz: pytz.BaseTzInfo = pytz.UTC
    ) -> List[LocalEvent]:
        """Large or high-draw events on the local calendar ``day`` in ``tz``."""


class SportsProvider(ABC):
    
    @abstractmethod
    def get_games_on_date(
        self,
        day: date,
        lat: float,
        lon: float,
        radius_miles: float = 50,
        tz: pytz.BaseTzInfo = pytz.UTC,
    ) -> List[SportsGame]:
        """Professional games within ``radius_miles`` starting on the local ``day``, nearest first."""


class HolidayProvider(ABC):
    
    @abstractmethod
    def get_holiday(self, day: date) -> Optional[Holiday]:
        """The holiday falling on ``day``, if any."""
    
    @abstractmethod
    def get_upcoming_holidays(self, count: int, today: Optional[date] = None) -> List[Holiday]:
        """The next ``count`` holidays on or after ``today``."""
