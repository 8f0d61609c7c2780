"""
Pattern validation.

Re-tests patterns against a fresh window of sales: each pattern's condition
splits the window into matching and comparison days, and the pattern holds
when the observed change points the same way as the change it predicts.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Optional

import pytz
from loguru import logger

from covercast.config import Settings, settings as default_settings
from covercast.db.repositories import PatternRepository
from covercast.domain.aggregates import DailyAggregate
from covercast.domain.context import ContextSnapshot
from covercast.domain.patterns import Metric, Pattern
from covercast.domain.sources import RestaurantSource, TransactionSource
from covercast.domain.transactions import RestaurantProfile, TransactionRecord
from covercast.services.aggregator import aggregate_daily
from covercast.services.context import ContextCollector
from covercast.services.matching import comparison_matches, factor_matches
from covercast.services.statistics import mean, percent_change
from covercast.utils.datetime import get_timezone, local_date, local_today
from covercast.utils.errors import RestaurantNotFoundError

# Expected share of an item's sales in any one of the four weather buckets.
UNIFORM_BUCKET_SHARE = 25.0


@dataclass
class ValidationResult:
    validated: int = 0
    invalidated: int = 0
    skipped: int = 0
    errors: int = 0


def metric_value(day: DailyAggregate, metric: Metric) -> float:
    if metric == Metric.TRAFFIC:
        return float(day.transaction_count)
    if metric == Metric.AVG_TICKET:
        return day.avg_ticket
    return day.revenue


class PatternValidator:
    """Updates pattern accuracy from fresh sales data."""

    def __init__(
        self,
        store: PatternRepository,
        transactions: TransactionSource,
        restaurants: RestaurantSource,
        context: ContextCollector,
        config: Settings = default_settings,
    ):
        self.store = store
        self.transactions = transactions
        self.restaurants = restaurants
        self.context = context
        self.config = config

    def validate_patterns(self, restaurant_id: int, now: Optional[datetime] = None) -> ValidationResult:
        """Validate every visible pattern against the trailing validation window."""
        restaurant = self._get_restaurant(restaurant_id)
        tz = get_timezone(restaurant.timezone, self.config.default_timezone)
        end_day = local_today(tz, now) + timedelta(days=1)
        start_day = end_day - timedelta(days=self.config.validation_window_days)

        fresh = self.transactions.get_transactions(
            restaurant_id,
            tz.localize(datetime.combine(start_day, time.min)),
            tz.localize(datetime.combine(end_day, time.min)),
        )
        return self.validate(restaurant_id, fresh)

    def validate(self, restaurant_id: int, fresh_transactions: List[TransactionRecord]) -> ValidationResult:
        """
        Re-test all active patterns visible to a restaurant.

        Args:
            restaurant_id: Restaurant whose own, regional and global patterns are tested
            fresh_transactions: Sales observed since the patterns were discovered

        Returns:
            Counts of validated, invalidated and untestable patterns
        """
        restaurant = self._get_restaurant(restaurant_id)
        if not fresh_transactions:
            logger.info(f"No fresh transactions for restaurant {restaurant_id}; nothing to validate")
            return ValidationResult()

        tz = get_timezone(restaurant.timezone, self.config.default_timezone)
        daily = aggregate_daily(fresh_transactions, tz)
        context = self.context.collect(restaurant, [d.date for d in daily])

        seen = set()
        patterns = []
        for pattern in self.store.find_visible(restaurant.id, restaurant.region, restaurant.cuisine_type):
            if pattern.id not in seen:
                seen.add(pattern.id)
                patterns.append(pattern)

        return self.validate_against(patterns, fresh_transactions, daily, context, tz)

    def validate_against(
        self,
        patterns: Iterable[Pattern],
        transactions: List[TransactionRecord],
        daily: List[DailyAggregate],
        context: Dict,
        tz: pytz.BaseTzInfo,
    ) -> ValidationResult:
        """Test ``patterns`` against already aggregated data and record each outcome."""
        result = ValidationResult()

        for pattern in patterns:
            try:
                outcome = self.evaluate(pattern, transactions, daily, context, tz)
                if outcome is None:
                    result.skipped += 1
                    continue

                self.store.record_validation(pattern.id, outcome)
                if outcome:
                    result.validated += 1
                else:
                    result.invalidated += 1
            except Exception as e:
                result.errors += 1
                logger.exception(f"Validation of pattern {pattern.id} failed: {e}")

        logger.info(
            f"Validation: {result.validated} validated, {result.invalidated} invalidated, "
            f"{result.skipped} untestable, {result.errors} errors"
        )
        return result

    def evaluate(
        self,
        pattern: Pattern,
        transactions: List[TransactionRecord],
        daily: List[DailyAggregate],
        context: Dict,
        tz: pytz.BaseTzInfo,
    ) -> Optional[bool]:
        """
        True when the observed change has the predicted sign, False when it
        does not, None when the window cannot test the pattern.
        """
        predicted = pattern.business_outcome.change
        if pattern.metric == Metric.ITEM_SALES:
            observed = self._observed_item_share_change(pattern, transactions, context, tz)
        else:
            observed = self._observed_change(pattern, daily, context)

        if observed is None or predicted == 0:
            return None
        return (observed > 0) == (predicted > 0) and observed != 0

    @staticmethod
    def _observed_change(pattern: Pattern, daily: List[DailyAggregate], context: Dict) -> Optional[float]:
        matching, comparison = [], []
        for day in daily:
            snapshot: Optional[ContextSnapshot] = context.get(day.date)
            if snapshot is None:
                continue
            value = metric_value(day, pattern.metric)
            if factor_matches(pattern.external_factor, snapshot):
                matching.append(value)
            elif comparison_matches(pattern.external_factor, snapshot):
                comparison.append(value)

        if not matching or not comparison:
            return None
        baseline = mean(comparison)
        if baseline == 0:
            return None
        return percent_change(mean(matching), baseline)

    @staticmethod
    def _observed_item_share_change(
        pattern: Pattern,
        transactions: List[TransactionRecord],
        context: Dict,
        tz: pytz.BaseTzInfo,
    ) -> Optional[float]:
        factor = pattern.external_factor
        name = (factor.item_name or "").lower()
        category = (factor.item_category or "").lower()

        total = 0.0
        in_bucket = 0.0
        for txn in transactions:
            snapshot = context.get(local_date(txn.transaction_date, tz))
            if snapshot is None or snapshot.weather is None:
                continue
            for item in txn.items:
                if item.name.lower() != name or item.category.lower() != category:
                    continue
                total += item.quantity
                if snapshot.weather.bucket == factor.weather_condition:
                    in_bucket += item.quantity

        if total == 0:
            return None
        return in_bucket / total * 100 - UNIFORM_BUCKET_SHARE

    def _get_restaurant(self, restaurant_id: int) -> RestaurantProfile:
        restaurant = self.restaurants.get_restaurant(restaurant_id)
        if restaurant is None:
            raise RestaurantNotFoundError(
                f"Restaurant {restaurant_id} not found", details={"restaurant_id": restaurant_id}
            )
        return restaurant
