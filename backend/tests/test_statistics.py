"""
Statistics helper tests: Pearson correlation, strength buckets, p-value
approximation and the daily aggregator.
"""

from datetime import date, datetime

import pytest
import pytz

from covercast.domain.patterns import Strength
from covercast.services.aggregator import aggregate_daily
from covercast.services.statistics import (
    approximate_p_value,
    classify_strength,
    clamp_correlation,
    mean,
    pearson_correlation,
    percent_change,
)

from conftest import PACIFIC, item, sales


class TestPearsonCorrelation:
    """Pearson r over paired series."""

    def test_series_with_itself_is_exactly_one(self):
        xs = [40, 45.5, 52, 61, 70.25, 88, 90]
        assert pearson_correlation(xs, xs) == 1.0

    def test_series_with_negation_is_exactly_minus_one(self):
        xs = [3.0, 7.0, 1.5, 9.25, 4.0]
        assert pearson_correlation(xs, [-x for x in xs]) == -1.0

    def test_linear_relationship(self):
        temps = list(range(40, 91, 5))
        revenue = [1000 + 20 * t for t in temps]
        assert pearson_correlation(temps, revenue) == pytest.approx(1.0)

    @pytest.mark.parametrize("xs,ys", [
        ([], []),
        ([1.0], [2.0]),
        ([1.0, 2.0], [2.0, 4.0]),
        ([1.0, 2.0, 3.0], [1.0, 2.0]),
    ])
    def test_undefined_for_short_or_unequal_input(self, xs, ys):
        assert pearson_correlation(xs, ys) is None

    def test_constant_series_is_undefined(self):
        assert pearson_correlation([5, 5, 5, 5], [1, 2, 3, 4]) is None


class TestClassifyStrength:
    @pytest.mark.parametrize("value,expected", [
        (0.85, Strength.VERY_STRONG),
        (0.65, Strength.STRONG),
        (0.45, Strength.MODERATE),
        (0.25, Strength.WEAK),
        (0.05, Strength.VERY_WEAK),
        (-0.1, Strength.NONE),
        (0.0, Strength.NONE),
        (0.8, Strength.VERY_STRONG),
    ])
    def test_buckets(self, value, expected):
        assert classify_strength(value) == expected


class TestApproximatePValue:
    def test_perfect_correlation_hits_floor(self):
        assert approximate_p_value(1.0, 35) == 0.001
        assert approximate_p_value(-1.0, 35) == 0.001

    def test_matches_closed_form(self):
        r, n = 0.5, 27
        t = r * 5 / (0.75 ** 0.5)
        assert approximate_p_value(r, n) == pytest.approx(1 / (1 + t))

    def test_tiny_samples_are_not_significant(self):
        assert approximate_p_value(0.9, 2) == 1.0


class TestHelpers:
    def test_clamp(self):
        assert clamp_correlation(1.7) == 1.0
        assert clamp_correlation(-3) == -1.0
        assert clamp_correlation(0.3) == 0.3

    def test_percent_change(self):
        assert percent_change(120, 100) == pytest.approx(20)
        assert percent_change(80, 100) == pytest.approx(-20)
        assert percent_change(50, 0) == 0.0

    def test_mean_of_empty_is_zero(self):
        assert mean([]) == 0.0
        assert mean([1, 2, 3]) == 2.0


class TestAggregateDaily:
    """Grouping checks into restaurant-local days."""

    def test_groups_by_local_date(self):
        # 11pm Pacific on June 1 is already June 2 in UTC.
        late = PACIFIC.localize(datetime(2024, 6, 1, 23, 0)).astimezone(pytz.UTC)
        records = sales(date(2024, 6, 1), [20.0]) + [
            sales(date(2024, 6, 1), [30.0])[0].model_copy(update={"transaction_date": late})
        ]

        daily = aggregate_daily(records, PACIFIC)

        assert [d.date for d in daily] == [date(2024, 6, 1)]
        assert daily[0].revenue == 50.0
        assert daily[0].transaction_count == 2
        assert daily[0].avg_ticket == 25.0

    def test_days_without_sales_are_absent(self):
        records = sales(date(2024, 6, 1), [10.0]) + sales(date(2024, 6, 4), [15.0, 5.0])

        daily = aggregate_daily(records, PACIFIC)

        assert [d.date for d in daily] == [date(2024, 6, 1), date(2024, 6, 4)]
        assert daily[1].revenue == 20.0

    def test_tallies_items_by_category(self):
        records = sales(
            date(2024, 6, 1), [12.0, 9.0],
            items=[item("Iced Latte", "Beverages", 2), item("Soup", "Food")],
        )

        daily = aggregate_daily(records, PACIFIC)

        assert daily[0].item_counts == {"Beverages": {"Iced Latte": 4}, "Food": {"Soup": 2}}

    def test_empty_input(self):
        assert aggregate_daily([], PACIFIC) == []
