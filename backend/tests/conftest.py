"""
Shared pytest fixtures for the CoverCast test suite.

Provides a throwaway SQLite database per test, repositories over it, and
in-memory context providers so no test touches the network.
"""

import os
import sys
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

import pytest
import pytz
from sqlalchemy.orm import sessionmaker

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from covercast.config import Settings
from covercast.db.models import Base
from covercast.db.repositories import PatternRepository, RestaurantRepository, TransactionRepository
from covercast.db.session import build_engine
from covercast.domain.context import (
    EventCategory,
    ImpactLevel,
    LocalEvent,
    SportsGame,
    WeatherSnapshot,
)
from covercast.domain.patterns import (
    BusinessOutcome,
    Condition,
    CorrelationType,
    ExternalFactor,
    FactorType,
    LearningStats,
    Metric,
    Pattern,
    PatternNarrative,
    PatternStatistics,
    Scope,
    Strength,
)
from covercast.domain.transactions import TransactionItem, TransactionRecord
from covercast.providers.base import EventsProvider, SportsProvider, WeatherProvider
from covercast.providers.holidays import USHolidayCalendar
from covercast.services.context import ContextCollector

PACIFIC = pytz.timezone("America/Los_Angeles")
SACRAMENTO = (38.5816, -121.4944)


class FakeWeather(WeatherProvider):
    """Historical weather keyed by restaurant-local date."""

    def __init__(self, by_date: Optional[Dict[date, WeatherSnapshot]] = None, forecast=None):
        self.by_date = dict(by_date or {})
        self.forecast = list(forecast or [])
        self.calls = 0

    def get_current_weather(self, lat, lon):
        return None

    def get_historical_weather(self, lat, lon, timestamp):
        self.calls += 1
        return self.by_date.get(timestamp.date())

    def get_forecast(self, lat, lon, days=7):
        return self.forecast[:days]


class FakeEvents(EventsProvider):
    """Major events on fixed dates."""

    def __init__(self, event_dates=()):
        self.event_dates = set(event_dates)

    def get_local_events(self, lat, lon, radius_miles=5, start=None, end=None, tz=None):
        return []

    def get_major_events(self, lat, lon, day, tz=None):
        if day not in self.event_dates:
            return []
        return [LocalEvent(
            id=f"evt-{day.isoformat()}",
            name="Kings vs Warriors",
            category=EventCategory.SPORTS,
            start=PACIFIC.localize(datetime.combine(day, time(19))),
            venue="Golden 1 Center",
            expected_attendance=17000,
            distance_miles=0.4,
            impact_level=ImpactLevel.CRITICAL,
        )]


class FakeSports(SportsProvider):
    """A home game on fixed dates."""

    def __init__(self, game_dates=()):
        self.game_dates = set(game_dates)

    def get_games_on_date(self, day, lat, lon, radius_miles=50, tz=None):
        if day not in self.game_dates:
            return []
        return [SportsGame(
            id=f"game-{day.isoformat()}",
            league="NBA",
            home_team="Sacramento Kings",
            away_team="Phoenix Suns",
            game_date=PACIFIC.localize(datetime.combine(day, time(19))),
            venue="Golden 1 Center",
            distance_miles=0.4,
            expected_attendance=17500,
            is_home_game=True,
            impact_level=ImpactLevel.HIGH,
        )]


def weather(day: date, temperature: float, condition: str = "clouds") -> WeatherSnapshot:
    return WeatherSnapshot.from_conditions(
        timestamp=PACIFIC.localize(datetime.combine(day, time(12))),
        temperature=temperature,
        condition=condition,
    )


def sales(day: date, amounts: List[float], hours=(12, 18), items=()) -> List[TransactionRecord]:
    """One transaction per amount, at the given local hours, as UTC timestamps."""
    records = []
    for i, amount in enumerate(amounts):
        local = PACIFIC.localize(datetime.combine(day, time(hours[i % len(hours)])))
        records.append(TransactionRecord(
            transaction_date=local.astimezone(pytz.UTC),
            total_amount=amount,
            items=tuple(items),
        ))
    return records


def item(name: str, category: str, quantity: float = 1) -> TransactionItem:
    return TransactionItem(name=name, category=category, quantity=quantity)


def build_pattern(**overrides) -> Pattern:
    """A restaurant-scoped rain pattern; override any top-level field."""
    learning = overrides.pop("learning", {})
    statistics = overrides.pop("statistics", {})
    outcome = overrides.pop("business_outcome", {})
    data = dict(
        scope=Scope.RESTAURANT,
        restaurant_id=1,
        correlation_type=CorrelationType.WEATHER_SALES,
        external_factor=ExternalFactor(
            type=FactorType.WEATHER, condition=Condition.PRECIPITATION, weather_condition="rain"
        ),
        business_outcome=BusinessOutcome(**{
            "metric": Metric.REVENUE, "value": 800.0, "change": -20.0, "baseline": 1000.0, **outcome
        }),
        statistics=PatternStatistics(**{
            "correlation": -0.2, "p_value": 0.02, "sample_size": 10, "confidence": 70.0,
            "r_squared": 0.04, **statistics
        }),
        narrative=PatternNarrative(
            description="Rain decreases revenue",
            when_condition="On rainy days",
            then_outcome="Revenue decreases by 20.0%",
            strength=Strength.WEAK,
            actionable=False,
            recommendation="Push delivery promotions and comfort food on rainy days",
        ),
        learning=LearningStats(**{"data_points": 10, **learning}),
        confidence=70.0,
    )
    data.update(overrides)
    return Pattern(**data)


@pytest.fixture
def settings():
    return Settings(_env_file=None, cache_enabled=False, rate_limit_enabled=False)


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'covercast_test.db'}", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """A fresh database session for each test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def restaurants(db_session):
    return RestaurantRepository(db_session)


@pytest.fixture
def transactions(db_session):
    return TransactionRepository(db_session)


@pytest.fixture
def patterns(db_session):
    return PatternRepository(db_session)


@pytest.fixture
def restaurant(restaurants):
    """A Sacramento restaurant with coordinates."""
    return restaurants.create(
        name="Test Bistro",
        latitude=SACRAMENTO[0],
        longitude=SACRAMENTO[1],
        state="CA",
        cuisine_type="american",
        timezone="America/Los_Angeles",
    )


@pytest.fixture
def make_collector(settings):
    def _make(weather_by_date=None, event_dates=(), forecast=None, game_dates=()):
        return ContextCollector(
            weather=FakeWeather(weather_by_date, forecast),
            events=FakeEvents(event_dates),
            sports=FakeSports(game_dates),
            holidays=USHolidayCalendar(),
            config=settings,
        )
    return _make


def days_from(start: date, count: int) -> List[date]:
    return [start + timedelta(days=i) for i in range(count)]
