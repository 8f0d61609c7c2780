"""
Prediction engine tests: baselines, pattern blending and the week forecast.
"""

from datetime import date, timedelta

import pytest

from covercast.domain.forecasts import Prediction, PredictionInput
from covercast.domain.patterns import (
    Condition,
    CorrelationType,
    ExternalFactor,
    FactorType,
    Metric,
)
from covercast.services.prediction_engine import PredictionEngine
from covercast.utils.errors import RestaurantNotFoundError

from conftest import build_pattern, days_from, sales, weather

AS_OF = date(2024, 5, 1)
WEEKS = 30 / 7
COLD_FACTOR = ExternalFactor(
    type=FactorType.WEATHER, condition=Condition.TEMPERATURE, operator="below", threshold=60.0
)
SOUP_FACTOR = ExternalFactor(
    type=FactorType.WEATHER,
    condition=Condition.MENU_WEATHER,
    weather_condition="rainy",
    item_name="soup",
    item_category="food",
)


@pytest.fixture
def history(transactions, restaurant):
    """April 2024: two $500 checks every day."""
    for day in days_from(date(2024, 4, 1), 30):
        transactions.add_many(restaurant.id, sales(day, [500.0, 500.0]))


@pytest.fixture
def predictor_for(patterns, transactions, restaurants, make_collector, settings):
    def _build(forecast=None, track_usage=False):
        return PredictionEngine(
            patterns, transactions, restaurants, make_collector(forecast=forecast), settings,
            track_usage=track_usage,
        )
    return _build


class TestBaseline:
    def test_trailing_window(self, predictor_for, restaurants, restaurant, history):
        profile = restaurants.get_restaurant(restaurant.id)

        baseline = predictor_for().compute_baseline(profile, AS_OF)

        assert baseline.transaction_count == 60
        assert baseline.daily_avg_revenue == pytest.approx(1000)
        assert baseline.daily_avg_transactions == pytest.approx(2)
        assert baseline.avg_ticket == pytest.approx(500)
        assert baseline.trend_percent == 0.0
        assert set(baseline.peak_hours) == {"12:00", "18:00"}
        # April 2024 has five Mondays and four Thursdays.
        assert baseline.day_average(0).avg_revenue == pytest.approx(5000 / WEEKS)
        assert baseline.day_average(3).avg_revenue == pytest.approx(4000 / WEEKS)

    def test_trend_compares_halves(self, predictor_for, restaurants, restaurant, transactions):
        for day in days_from(date(2024, 4, 1), 30):
            amount = 400.0 if day < date(2024, 4, 16) else 600.0
            transactions.add_many(restaurant.id, sales(day, [amount]))

        baseline = predictor_for().compute_baseline(restaurants.get_restaurant(restaurant.id), AS_OF)

        assert baseline.trend_percent == pytest.approx(50)

    def test_empty_history(self, predictor_for, restaurants, restaurant):
        baseline = predictor_for().compute_baseline(restaurants.get_restaurant(restaurant.id), AS_OF)

        assert baseline.is_empty
        assert baseline.daily_avg_revenue == 0.0


class TestPredict:
    def make_patterns(self, patterns, restaurant):
        rain = patterns.create(build_pattern(restaurant_id=restaurant.id, confidence=70.0))
        cold = patterns.create(build_pattern(
            restaurant_id=restaurant.id,
            external_factor=COLD_FACTOR,
            business_outcome={"change": -10.0},
            confidence=90.0,
        ))
        soup = patterns.create(build_pattern(
            restaurant_id=restaurant.id,
            correlation_type=CorrelationType.WEATHER_ITEMS,
            external_factor=SOUP_FACTOR,
            business_outcome={"metric": Metric.ITEM_SALES, "value": 35.0, "change": 40.0, "baseline": 25.0},
            confidence=65.0,
        ))
        # Would match a rainy 55°F day but sits below the confidence floor.
        patterns.create(build_pattern(
            restaurant_id=restaurant.id,
            external_factor=COLD_FACTOR.model_copy(update={"threshold": 58.0}),
            business_outcome={"metric": Metric.TRAFFIC, "change": -30.0},
            confidence=40.0,
        ))
        return rain, cold, soup

    def rainy_day(self, restaurant):
        return PredictionInput(restaurant_id=restaurant.id, date=AS_OF, weather=weather(AS_OF, 55, "rain"))

    def test_blends_matching_patterns(self, predictor_for, patterns, restaurant, history):
        self.make_patterns(patterns, restaurant)

        predictions = {p.metric: p for p in predictor_for().predict(self.rainy_day(restaurant), today=AS_OF)}

        assert set(predictions) == {Metric.REVENUE, Metric.ITEM_SALES}
        revenue = predictions[Metric.REVENUE]
        assert revenue.predicted_value == pytest.approx((800 * 70 + 900 * 90) / 160)
        assert revenue.confidence == pytest.approx(80)
        assert revenue.baseline == pytest.approx(1000)
        assert revenue.change == pytest.approx(-14.375)
        assert len(revenue.factors) == 2

        items = predictions[Metric.ITEM_SALES]
        assert items.subject == "food:soup"
        assert items.predicted_value == pytest.approx(35)

    def test_no_match_no_prediction(self, predictor_for, patterns, restaurant, history):
        self.make_patterns(patterns, restaurant)
        dry = PredictionInput(restaurant_id=restaurant.id, date=AS_OF, weather=weather(AS_OF, 70, "clear"))

        assert predictor_for().predict(dry, today=AS_OF) == []

    def test_usage_tracking_is_opt_in(self, predictor_for, patterns, restaurant, history):
        rain, cold, soup = self.make_patterns(patterns, restaurant)

        predictor_for().predict(self.rainy_day(restaurant), today=AS_OF)
        assert patterns.get(rain.id).times_applied == 0

        predictor_for(track_usage=True).predict(self.rainy_day(restaurant), today=AS_OF)
        assert patterns.get(rain.id).times_applied == 1
        assert patterns.get(soup.id).times_applied == 1

    def test_week_ahead_uses_todays_baseline(self, predictor_for, patterns, restaurant, history):
        patterns.create(build_pattern(restaurant_id=restaurant.id, confidence=70.0))
        next_week = date(2024, 5, 8)
        request = PredictionInput(
            restaurant_id=restaurant.id, date=next_week, weather=weather(next_week, 55, "rain")
        )

        [revenue] = predictor_for().predict(request, today=AS_OF)

        assert revenue.baseline == pytest.approx(1000)
        assert revenue.predicted_value == pytest.approx(800)

    def test_no_history_no_prediction(self, predictor_for, patterns, restaurant):
        self.make_patterns(patterns, restaurant)

        assert predictor_for().predict(self.rainy_day(restaurant), today=AS_OF) == []

    def test_unknown_restaurant(self, predictor_for):
        with pytest.raises(RestaurantNotFoundError):
            predictor_for().predict(PredictionInput(restaurant_id=77, date=AS_OF))


class TestCombine:
    def test_single_prediction_passes_through(self):
        only = Prediction(metric=Metric.REVENUE, predicted_value=900, confidence=70, baseline=1000, change=-10)

        assert PredictionEngine.combine([only]) == [only]

    def test_zero_confidence_falls_back_to_plain_mean(self):
        group = [
            Prediction(metric=Metric.TRAFFIC, predicted_value=v, confidence=0, baseline=100, change=0)
            for v in (90.0, 110.0, 130.0)
        ]

        [combined] = PredictionEngine.combine(group)

        assert combined.predicted_value == pytest.approx(110)
        assert combined.change == pytest.approx(10)


class TestWeekForecast:
    def forecast_week(self):
        days = [AS_OF + timedelta(days=i) for i in range(7)]
        return [weather(d, 55, "rain") if d == date(2024, 5, 3) else weather(d, 70, "clear") for d in days]

    def test_week(self, predictor_for, patterns, restaurant, history):
        rain = patterns.create(build_pattern(restaurant_id=restaurant.id, confidence=70.0))
        patterns.create(build_pattern(
            restaurant_id=restaurant.id,
            correlation_type=CorrelationType.EVENT_SALES,
            external_factor=ExternalFactor(type=FactorType.EVENT, condition=Condition.LOCAL_EVENT),
            business_outcome={"change": 30.0},
            confidence=90.0,
        ))

        week = predictor_for(self.forecast_week()).generate_week_forecast(restaurant.id, today=AS_OF)

        assert [d.day_of_week for d in week.days] == [
            "Wednesday", "Thursday", "Friday", "Saturday", "Sunday", "Monday", "Tuesday",
        ]
        wednesday, _, friday = week.days[:3]
        assert wednesday.predicted_revenue == pytest.approx(4000 / WEEKS)
        assert wednesday.confidence == 75
        assert friday.predicted_revenue == pytest.approx(4000 / WEEKS * 0.8)
        assert [f.source_pattern for f in friday.factors if f.source_pattern] == [rain.id]
        assert friday.confidence == pytest.approx(72.5)
        assert friday.revenue_low < friday.predicted_revenue < friday.revenue_high
        assert all(f.type != "event" for d in week.days for f in d.factors)

        assert week.total_revenue == pytest.approx(sum(d.predicted_revenue for d in week.days))
        assert "Monday looks strongest at +17% vs an average day" in week.insights
        assert "Friday looks slowest at -25% vs an average day" in week.insights
        assert "Friday: Push delivery promotions and comfort food on rainy days" in week.action_items
        assert len(week.action_items) <= 5

    def test_usage_tracking(self, predictor_for, patterns, restaurant, history):
        rain = patterns.create(build_pattern(restaurant_id=restaurant.id, confidence=70.0))

        predictor_for(self.forecast_week(), track_usage=True).generate_week_forecast(restaurant.id, today=AS_OF)

        assert patterns.get(rain.id).times_applied == 1

    def test_without_history(self, predictor_for, restaurant):
        week = predictor_for().generate_week_forecast(restaurant.id, today=AS_OF)

        assert week.days == []
        assert week.total_revenue == 0.0
        assert week.insights

    def test_without_forecast_skips_weather_patterns(self, predictor_for, patterns, restaurant, history):
        patterns.create(build_pattern(
            restaurant_id=restaurant.id,
            external_factor=ExternalFactor(
                type=FactorType.WEATHER, condition=Condition.TEMPERATURE, operator="above", threshold=20.0
            ),
            business_outcome={"change": 25.0},
            confidence=90.0,
        ))

        week = predictor_for(forecast=[]).generate_week_forecast(restaurant.id, today=AS_OF)

        assert len(week.days) == 7
        assert all(f.source_pattern is None for d in week.days for f in d.factors)
        assert week.days[0].predicted_revenue == pytest.approx(4000 / WEEKS)
