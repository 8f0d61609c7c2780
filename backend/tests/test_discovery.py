"""
Correlation discovery tests over a temporary database and in-memory providers.
"""

from datetime import date, datetime

import pytest
import pytz

from covercast.domain.aggregates import DailyAggregate
from covercast.domain.context import ContextSnapshot
from covercast.domain.patterns import Condition, CorrelationType, Metric, Scope, Strength
from covercast.domain.transactions import RestaurantProfile
from covercast.services.correlation_engine import CorrelationEngine, DiscoveryResult, DiscoveryRun
from covercast.services.validator import PatternValidator
from covercast.utils.errors import InsufficientDataError, InvalidDateRangeError, RestaurantNotFoundError

from conftest import PACIFIC, SACRAMENTO, FakeSports, days_from, item, sales, weather

WINDOW_START = datetime(2024, 4, 1, tzinfo=pytz.UTC)
WINDOW_END = datetime(2024, 5, 10, tzinfo=pytz.UTC)


@pytest.fixture
def engine_for(patterns, transactions, restaurants, make_collector, settings):
    """Build an engine whose context comes from the given fake weather and events."""
    def _build(weather_by_date=None, event_dates=(), game_dates=()):
        context = make_collector(weather_by_date, event_dates, game_dates=game_dates)
        validator = PatternValidator(patterns, transactions, restaurants, context, settings)
        return CorrelationEngine(patterns, transactions, restaurants, context, validator, settings)
    return _build


def seed_temperature_history(transactions, restaurant):
    """35 days where revenue rises linearly with temperature (40-90°F)."""
    by_date = {}
    for i, day in enumerate(days_from(date(2024, 4, 1), 35)):
        temperature = 40 + (i % 11) * 5
        by_date[day] = weather(day, temperature)
        revenue = 1000 + 20 * temperature
        transactions.add_many(restaurant.id, sales(day, [revenue / 2, revenue / 2]))
    return by_date


def seed_event_history(transactions, restaurant, event_count):
    """28 clear 75°F days; the first ``event_count`` Saturdays have a major event and triple revenue."""
    days = days_from(date(2024, 4, 1), 28)
    saturdays = [d for d in days if d.weekday() == 5][:event_count]
    for day in days:
        daily = 3000.0 if day in saturdays else 1000.0
        transactions.add_many(restaurant.id, sales(day, [daily / 2, daily / 2]))
    return {d: weather(d, 75, "clear") for d in days}, saturdays


@pytest.fixture
def engine(engine_for):
    return engine_for()


def snapshot(day, temperature=60.0, condition="clouds", game=False):
    games = FakeSports([day]).get_games_on_date(day, *SACRAMENTO) if game else []
    return ContextSnapshot(date=day, weather=weather(day, temperature, condition), games=tuple(games))


def run_of(days):
    """A discovery run over ``(snapshot, revenue)`` pairs."""
    return DiscoveryRun(
        restaurant=RestaurantProfile(id=1),
        transactions=[],
        daily=[DailyAggregate(date=s.date, revenue=revenue, transaction_count=2) for s, revenue in days],
        context={s.date: s for s, _ in days},
        tz=PACIFIC,
    )


class TestDiscoverGuards:
    def test_invalid_range(self, engine_for, restaurant):
        with pytest.raises(InvalidDateRangeError):
            engine_for().discover(restaurant.id, WINDOW_END, WINDOW_START)

    def test_empty_range(self, engine_for, restaurant):
        with pytest.raises(InvalidDateRangeError):
            engine_for().discover(restaurant.id, WINDOW_START, WINDOW_START)

    def test_unknown_restaurant(self, engine_for):
        with pytest.raises(RestaurantNotFoundError):
            engine_for().discover(999, WINDOW_START, WINDOW_END)

    def test_no_transactions_is_empty_result(self, engine_for, restaurant):
        assert engine_for().discover(restaurant.id, WINDOW_START, WINDOW_END) == DiscoveryResult()

    def test_too_few_transactions_stores_nothing(self, engine_for, restaurant, transactions, patterns):
        for day in days_from(date(2024, 4, 1), 10):
            transactions.add_many(restaurant.id, sales(day, [100.0]))

        result = engine_for().discover(restaurant.id, WINDOW_START, WINDOW_END)

        assert result.patterns == []
        assert patterns.find_by_restaurant(restaurant.id) == []


class TestTemperatureDiscovery:
    def test_finds_positive_temperature_pattern(self, engine_for, restaurant, transactions, patterns):
        by_date = seed_temperature_history(transactions, restaurant)

        result = engine_for(by_date).discover(restaurant.id, WINDOW_START, WINDOW_END)

        assert result.new_count == 1
        [pattern] = result.patterns
        assert pattern.correlation_type == CorrelationType.WEATHER_SALES
        assert pattern.external_factor.condition == Condition.TEMPERATURE
        assert pattern.external_factor.operator == "above"
        assert pattern.external_factor.threshold == 63.7
        assert pattern.statistics.correlation > 0.99
        assert pattern.statistics.sample_size == 35
        assert pattern.business_outcome.change == pytest.approx(25, abs=0.1)
        assert pattern.narrative.actionable
        assert pattern.narrative.strength == Strength.VERY_STRONG
        assert pattern.scope == Scope.RESTAURANT
        assert pattern.region == "west"
        assert pattern.cuisine_type == "american"
        assert pattern.learning.data_points == 35
        assert [p.id for p in patterns.find_by_restaurant(restaurant.id)] == [pattern.id]

    def test_rerun_validates_then_supersedes(self, engine_for, restaurant, transactions, patterns):
        engine = engine_for(seed_temperature_history(transactions, restaurant))
        first = engine.discover(restaurant.id, WINDOW_START, WINDOW_END).patterns[0]

        second = engine.discover(restaurant.id, WINDOW_START, WINDOW_END)

        assert second.new_count == 0
        assert second.validated_count == 1
        [successor] = second.patterns
        assert successor.version == 2
        assert successor.previous_version_id == first.id
        assert successor.learning.times_validated == 1
        assert not patterns.get(first.id).is_active
        assert [p.id for p in patterns.find_by_restaurant(restaurant.id)] == [successor.id]


class TestMultiFactorDiscovery:
    def test_weekend_event_scenario(self, engine_for, restaurant, transactions):
        by_date, event_days = seed_event_history(transactions, restaurant, 3)

        result = engine_for(by_date, event_days).discover(restaurant.id, WINDOW_START, WINDOW_END)

        by_type = {p.correlation_type: p for p in result.patterns}
        scenario = by_type[CorrelationType.MULTI_FACTOR]
        assert scenario.external_factor.condition == Condition.WEEKEND_PERFECT_EVENT
        assert scenario.business_outcome.change == pytest.approx(200)
        assert scenario.narrative.strength == Strength.VERY_STRONG
        assert scenario.statistics.correlation == 0.85
        assert scenario.statistics.confidence == 90

        event = by_type[CorrelationType.EVENT_SALES]
        assert event.external_factor.venue_name == "Golden 1 Center"
        assert event.statistics.correlation == 0.7

    def test_two_event_days_are_not_enough(self, engine_for, restaurant, transactions):
        by_date, event_days = seed_event_history(transactions, restaurant, 2)

        result = engine_for(by_date, event_days).discover(restaurant.id, WINDOW_START, WINDOW_END)

        assert all(p.correlation_type != CorrelationType.MULTI_FACTOR for p in result.patterns)
        assert all(p.correlation_type != CorrelationType.EVENT_SALES for p in result.patterns)


class TestMenuDiscovery:
    def test_items_tied_to_weather_buckets(self, engine_for, restaurant, transactions):
        by_date = {}
        for i, day in enumerate(days_from(date(2024, 4, 1), 30)):
            if i % 2 == 0:
                by_date[day] = weather(day, 85, "clear")
                items = [item("Iced Latte", "Beverages", 2)]
            else:
                by_date[day] = weather(day, 45)
                items = [item("Soup", "Food", 1)]
            transactions.add_many(restaurant.id, sales(day, [50.0, 50.0], items=items))

        result = engine_for(by_date).discover(restaurant.id, WINDOW_START, WINDOW_END)

        menu = [p for p in result.patterns if p.correlation_type == CorrelationType.WEATHER_ITEMS]
        assert [(p.external_factor.item_name, p.external_factor.weather_condition) for p in menu] == [
            ("iced latte", "hot"),
            ("soup", "cold"),
        ]
        latte = menu[0]
        assert latte.metric == Metric.ITEM_SALES
        assert latte.business_outcome.change == pytest.approx(75)
        assert latte.statistics.sample_size == 60
        assert latte.narrative.strength == Strength.STRONG


class TestHolidayDiscovery:
    def test_holiday_checks_are_smaller(self, engine_for, restaurant, transactions):
        for day in days_from(date(2024, 6, 20), 30):
            if day == date(2024, 7, 4):
                transactions.add_many(restaurant.id, sales(day, [20.0] * 5))
            else:
                transactions.add_many(restaurant.id, sales(day, [40.0, 40.0]))

        result = engine_for().discover(
            restaurant.id, datetime(2024, 6, 20, tzinfo=pytz.UTC), datetime(2024, 7, 25, tzinfo=pytz.UTC)
        )

        [holiday] = [p for p in result.patterns if p.correlation_type == CorrelationType.HOLIDAY_SALES]
        assert holiday.external_factor.holiday_name == "holidays_general"
        assert holiday.business_outcome.change == pytest.approx(-50)
        assert holiday.statistics.correlation == -0.7
        assert holiday.statistics.sample_size == 5
        assert holiday.narrative.strength == Strength.STRONG


class TestPrecipitationDiscovery:
    def rain_run(self, rainy_revenue, dry_days=5):
        days = days_from(date(2024, 4, 1), 3 + dry_days)
        return run_of(
            [(snapshot(d, 55, "rain"), rainy_revenue) for d in days[:3]]
            + [(snapshot(d, 65, "clear"), 1000.0) for d in days[3:]]
        )

    def test_rain_lowers_revenue(self, engine):
        [candidate] = engine.analyze_precipitation(self.rain_run(800.0))

        assert candidate.factor.condition == Condition.PRECIPITATION
        assert candidate.factor.weather_condition == "rain"
        assert candidate.outcome.change == pytest.approx(-20)
        assert candidate.outcome.baseline == pytest.approx(1000)
        assert candidate.statistics.correlation == pytest.approx(-0.2)
        assert candidate.statistics.p_value == 0.02
        assert candidate.statistics.sample_size == 3
        assert candidate.statistics.confidence == pytest.approx(20)
        assert not candidate.narrative.actionable

    def test_change_under_fifteen_percent_is_ignored(self, engine):
        assert engine.analyze_precipitation(self.rain_run(860.0)) == []

    def test_without_dry_days_assumes_dry_days_run_five_percent_higher(self, engine):
        # 800 vs an assumed 840
        assert engine.analyze_precipitation(self.rain_run(800.0, dry_days=0)) == []

    def test_needs_three_rainy_days(self, engine):
        days = days_from(date(2024, 4, 1), 6)
        run = run_of(
            [(snapshot(d, 55, "rain"), 500.0) for d in days[:2]]
            + [(snapshot(d, 65, "clear"), 1000.0) for d in days[2:]]
        )

        with pytest.raises(InsufficientDataError):
            engine.analyze_precipitation(run)


class TestWeatherQualityDiscovery:
    def quality_run(self, excellent_revenue, poor_days=3):
        days = days_from(date(2024, 4, 1), 3 + poor_days + 2)
        return run_of(
            [(snapshot(d, 75, "clear"), excellent_revenue) for d in days[:3]]
            + [(snapshot(d, 55, "rain"), 1000.0) for d in days[3:3 + poor_days]]
            # Neither excellent nor poor
            + [(snapshot(d, 55, "clouds"), 5000.0) for d in days[3 + poor_days:]]
        )

    def test_perfect_days_beat_poor_days(self, engine):
        [candidate] = engine.analyze_weather_quality(self.quality_run(1200.0))

        assert candidate.factor.condition == Condition.WEATHER_QUALITY
        assert candidate.factor.weather_condition == "excellent"
        assert candidate.outcome.change == pytest.approx(20)
        assert candidate.statistics.correlation == pytest.approx(0.2)
        assert candidate.statistics.p_value == 0.01
        assert candidate.statistics.sample_size == 6
        assert candidate.statistics.confidence == pytest.approx(16)
        assert candidate.narrative.recommendation

    def test_change_under_fifteen_percent_is_ignored(self, engine):
        assert engine.analyze_weather_quality(self.quality_run(1140.0)) == []

    def test_needs_three_days_of_each(self, engine):
        with pytest.raises(InsufficientDataError):
            engine.analyze_weather_quality(self.quality_run(1200.0, poor_days=2))


class TestSportsDiscovery:
    def game_run(self, game_revenue, quiet_days=5, game_days=3):
        days = days_from(date(2024, 4, 1), game_days + quiet_days)
        return run_of(
            [(snapshot(d, game=True), game_revenue) for d in days[:game_days]]
            + [(snapshot(d), 1000.0) for d in days[game_days:]]
        )

    def test_game_days_lift_revenue(self, engine):
        [candidate] = engine.analyze_sports(self.game_run(1200.0))

        assert candidate.correlation_type == CorrelationType.SPORTS_SALES
        assert candidate.factor.league == "NBA"
        assert candidate.factor.team_name == "Sacramento Kings"
        assert candidate.outcome.change == pytest.approx(20)
        assert candidate.statistics.correlation == 0.75
        assert candidate.statistics.p_value == 0.01
        assert candidate.statistics.sample_size == 8
        assert candidate.statistics.confidence == 45
        assert candidate.narrative.strength == Strength.WEAK

    def test_game_days_that_hurt_are_negative(self, engine):
        [candidate] = engine.analyze_sports(self.game_run(800.0))

        assert candidate.statistics.correlation == -0.75
        assert candidate.outcome.change == pytest.approx(-20)

    def test_change_under_fifteen_percent_is_ignored(self, engine):
        assert engine.analyze_sports(self.game_run(1140.0)) == []

    def test_without_quiet_days_assumes_thirty_percent_lower_baseline(self, engine):
        [candidate] = engine.analyze_sports(self.game_run(1000.0, quiet_days=0))

        assert candidate.outcome.baseline == pytest.approx(700)
        assert candidate.outcome.change == pytest.approx(300 / 7)
        assert candidate.narrative.strength == Strength.STRONG

    def test_needs_three_game_days(self, engine):
        with pytest.raises(InsufficientDataError):
            engine.analyze_sports(self.game_run(2000.0, game_days=2))

    def test_discovered_through_collected_context(self, engine_for, restaurant, transactions):
        days = days_from(date(2024, 4, 1), 28)
        game_days = [d for d in days if d.weekday() == 1][:3]
        for day in days:
            daily = 1200.0 if day in game_days else 1000.0
            transactions.add_many(restaurant.id, sales(day, [daily / 2, daily / 2]))
        by_date = {d: weather(d, 60) for d in days}

        result = engine_for(by_date, game_dates=game_days).discover(restaurant.id, WINDOW_START, WINDOW_END)

        [sports] = [p for p in result.patterns if p.correlation_type == CorrelationType.SPORTS_SALES]
        assert sports.external_factor.team_name == "Sacramento Kings"
        assert sports.business_outcome.change == pytest.approx(20)


class TestScenarioDiscovery:
    """Rainy Fridays and cold Mondays over five weeks from Monday 2024-04-01."""

    DAYS = days_from(date(2024, 4, 1), 35)
    FRIDAYS = [d for d in DAYS if d.weekday() == 4]
    MONDAYS = [d for d in DAYS if d.weekday() == 0]

    def scenario_run(self, overrides):
        """Plain 60°F days at $1000 with ``{day: (snapshot, revenue)}`` overrides."""
        return run_of([overrides.get(d, (snapshot(d), 1000.0)) for d in self.DAYS])

    def rainy_fridays(self, revenue, rainy=2):
        return self.scenario_run({d: (snapshot(d, 55, "rain"), revenue) for d in self.FRIDAYS[:rainy]})

    def cold_mondays(self, revenue, mild_temperatures=(60, 60, 60)):
        cold = {d: (snapshot(d, 45), revenue) for d in self.MONDAYS[:2]}
        mild = {d: (snapshot(d, t), 1000.0) for d, t in zip(self.MONDAYS[2:], mild_temperatures)}
        return self.scenario_run({**cold, **mild})

    def scenario(self, candidates, condition):
        return [c for c in candidates if c.factor.condition == condition]

    def test_rainy_friday(self, engine):
        [candidate] = self.scenario(engine.analyze_multi_factor(self.rainy_fridays(800.0)), Condition.RAINY_FRIDAY)

        assert candidate.outcome.change == pytest.approx(-20)
        assert candidate.statistics.correlation == pytest.approx(-0.2)
        assert candidate.statistics.confidence == 80
        assert candidate.statistics.sample_size == 5
        assert candidate.narrative.strength == Strength.MODERATE

    def test_rainy_friday_under_fifteen_percent_is_ignored(self, engine):
        assert self.scenario(engine.analyze_multi_factor(self.rainy_fridays(860.0)), Condition.RAINY_FRIDAY) == []

    def test_one_rainy_friday_is_not_enough(self, engine):
        candidates = engine.analyze_multi_factor(self.rainy_fridays(500.0, rainy=1))

        assert self.scenario(candidates, Condition.RAINY_FRIDAY) == []

    def test_cold_monday(self, engine):
        [candidate] = self.scenario(engine.analyze_multi_factor(self.cold_mondays(1150.0)), Condition.COLD_MONDAY)

        assert candidate.outcome.change == pytest.approx(15)
        assert candidate.statistics.correlation == pytest.approx(0.15)
        assert candidate.statistics.confidence == 75
        assert candidate.statistics.sample_size == 5
        assert candidate.narrative.strength == Strength.WEAK

    def test_cold_monday_under_twelve_percent_is_ignored(self, engine):
        assert self.scenario(engine.analyze_multi_factor(self.cold_mondays(1110.0)), Condition.COLD_MONDAY) == []

    def test_eighty_degree_mondays_are_not_mild(self, engine):
        candidates = engine.analyze_multi_factor(self.cold_mondays(1150.0, mild_temperatures=(60, 60, 80)))

        assert self.scenario(candidates, Condition.COLD_MONDAY) == []

    def test_needs_twenty_days_with_weather(self, engine):
        run = run_of([(snapshot(d), 1000.0) for d in self.DAYS[:19]])

        with pytest.raises(InsufficientDataError):
            engine.analyze_multi_factor(run)
