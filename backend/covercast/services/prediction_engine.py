"""
Prediction Engine.

Computes a restaurant's trailing baseline, applies the active patterns whose
condition matches a forecast day, and blends overlapping predictions with a
confidence-weighted average. Read-only against the pattern store unless
usage tracking is switched on.
"""

from collections import Counter, OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger

from covercast.config import Settings, settings as default_settings
from covercast.db.repositories import PatternRepository
from covercast.domain.aggregates import Baseline, DayOfWeekStats
from covercast.domain.context import ContextSnapshot
from covercast.domain.forecasts import (
    DayForecast,
    Prediction,
    PredictionFactor,
    PredictionInput,
    WeekForecast,
)
from covercast.domain.patterns import FactorType, Metric, Pattern
from covercast.domain.sources import RestaurantSource, TransactionSource
from covercast.domain.transactions import RestaurantProfile
from covercast.services.context import ContextCollector
from covercast.services.matching import factor_matches
from covercast.services.statistics import mean, percent_change
from covercast.utils.datetime import get_timezone, local_today, to_local
from covercast.utils.errors import RestaurantNotFoundError

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
FORECAST_DAYS = 7
TEMPORAL_CONFIDENCE = 75
TREND_CONFIDENCE = 60
DEFAULT_DAY_CONFIDENCE = 50
MAX_ACTION_ITEMS = 5
# Patterns the week forecast can evaluate from forecast weather and the calendar alone.
FORECASTABLE_FACTORS = (FactorType.WEATHER, FactorType.HOLIDAY)


class PredictionEngine:
    """Day and week forecasts from baselines plus matching patterns."""

    def __init__(
        self,
        store: PatternRepository,
        transactions: TransactionSource,
        restaurants: RestaurantSource,
        context: ContextCollector,
        config: Settings = default_settings,
        track_usage: bool = False,
    ):
        self.store = store
        self.transactions = transactions
        self.restaurants = restaurants
        self.context = context
        self.config = config
        self.track_usage = track_usage

    # ------------------------------------------------------------------
    # Baseline
    # ------------------------------------------------------------------

    def compute_baseline(self, restaurant: RestaurantProfile, as_of: date) -> Baseline:
        """
        Trailing-window baseline ending the day before ``as_of``.

        Day-of-week averages divide by the number of weeks in the window, and
        the trend compares the window's second half against its first.
        """
        window = self.config.baseline_window_days
        tz = get_timezone(restaurant.timezone, self.config.default_timezone)
        start_day = as_of - timedelta(days=window)
        midpoint = start_day + timedelta(days=window // 2)

        transactions = self.transactions.get_transactions(
            restaurant.id,
            tz.localize(datetime.combine(start_day, time.min)),
            tz.localize(datetime.combine(as_of, time.min)),
        )
        if not transactions:
            return Baseline(
                daily_avg_revenue=0.0,
                daily_avg_transactions=0.0,
                avg_ticket=0.0,
                day_of_week={},
                trend_percent=0.0,
                peak_hours=[],
                window_days=window,
                transaction_count=0,
            )

        revenue_by_weekday: Dict[int, float] = {}
        count_by_weekday: Dict[int, int] = {}
        hours: Counter = Counter()
        first_half = second_half = 0.0

        for txn in transactions:
            local = to_local(txn.transaction_date, tz)
            weekday = local.weekday()
            revenue_by_weekday[weekday] = revenue_by_weekday.get(weekday, 0.0) + txn.total_amount
            count_by_weekday[weekday] = count_by_weekday.get(weekday, 0) + 1
            hours[local.hour] += 1
            if local.date() < midpoint:
                first_half += txn.total_amount
            else:
                second_half += txn.total_amount

        total = first_half + second_half
        count = len(transactions)
        weeks = window / 7
        day_of_week = {
            weekday: DayOfWeekStats(
                avg_revenue=revenue_by_weekday[weekday] / weeks,
                avg_transactions=count_by_weekday[weekday] / weeks,
            )
            for weekday in revenue_by_weekday
        }

        baseline = Baseline(
            daily_avg_revenue=total / window,
            daily_avg_transactions=count / window,
            avg_ticket=total / count,
            day_of_week=day_of_week,
            trend_percent=percent_change(second_half, first_half) if first_half > 0 else 0.0,
            peak_hours=[f"{hour}:00" for hour, _ in hours.most_common(3)],
            window_days=window,
            transaction_count=count,
        )
        logger.debug(
            f"Baseline for restaurant {restaurant.id}: ${baseline.daily_avg_revenue:.2f}/day, "
            f"{count} transactions, {baseline.trend_percent:+.1f}% trend"
        )
        return baseline

    # ------------------------------------------------------------------
    # Point predictions
    # ------------------------------------------------------------------

    def predict(self, request: PredictionInput, today: Optional[date] = None) -> List[Prediction]:
        """
        Predictions for one day from every matching high-confidence pattern.

        The baseline is the trailing window ending before ``today`` (the
        restaurant-local date when omitted), whatever day is predicted.
        Returns an empty list when the restaurant has no sales history or no
        pattern applies.
        """
        restaurant = self._get_restaurant(request.restaurant_id)
        tz = get_timezone(restaurant.timezone, self.config.default_timezone)
        baseline = self.compute_baseline(restaurant, today or local_today(tz))
        if baseline.is_empty:
            logger.info(f"No baseline for restaurant {restaurant.id}; nothing to predict")
            return []

        snapshot = request.snapshot()
        predictions = []
        for pattern in self._applicable_patterns(restaurant):
            if not factor_matches(pattern.external_factor, snapshot):
                continue

            base = self.metric_baseline(pattern, baseline)
            change = pattern.business_outcome.change
            predictions.append(Prediction(
                metric=pattern.metric,
                predicted_value=base * (1 + change / 100),
                confidence=pattern.confidence,
                baseline=base,
                change=change,
                subject=self._subject(pattern),
                factors=[self._pattern_factor(pattern)],
            ))
            if self.track_usage:
                self.store.mark_applied(pattern.id)

        return self.combine(predictions)

    @staticmethod
    def combine(predictions: List[Prediction]) -> List[Prediction]:
        """
        Merge predictions for the same metric (and menu item).

        value = Σ(value·confidence) / Σconfidence, confidence = mean(confidence),
        change is recomputed against the shared baseline and factors are unioned.
        """
        groups: "OrderedDict[Tuple[Metric, Optional[str]], List[Prediction]]" = OrderedDict()
        for prediction in predictions:
            groups.setdefault((prediction.metric, prediction.subject), []).append(prediction)

        combined = []
        for (metric, subject), group in groups.items():
            if len(group) == 1:
                combined.append(group[0])
                continue

            weight = sum(p.confidence for p in group)
            if weight == 0:
                value = mean([p.predicted_value for p in group])
            else:
                value = sum(p.predicted_value * p.confidence for p in group) / weight
            baseline = group[0].baseline
            combined.append(Prediction(
                metric=metric,
                predicted_value=value,
                confidence=mean([p.confidence for p in group]),
                baseline=baseline,
                change=percent_change(value, baseline),
                subject=subject,
                factors=[f for p in group for f in p.factors],
            ))
        return combined

    @staticmethod
    def metric_baseline(pattern: Pattern, baseline: Baseline) -> float:
        metric = pattern.metric
        if metric == Metric.REVENUE:
            return baseline.daily_avg_revenue
        if metric == Metric.TRAFFIC:
            return baseline.daily_avg_transactions
        if metric == Metric.AVG_TICKET:
            return baseline.avg_ticket
        return pattern.business_outcome.baseline

    # ------------------------------------------------------------------
    # Week forecast
    # ------------------------------------------------------------------

    def generate_week_forecast(self, restaurant_id: int, today: Optional[date] = None) -> WeekForecast:
        """Seven daily forecasts starting today, with insights and action items."""
        restaurant = self._get_restaurant(restaurant_id)
        tz = get_timezone(restaurant.timezone, self.config.default_timezone)
        start = today or local_today(tz)

        baseline = self.compute_baseline(restaurant, start)
        if baseline.is_empty:
            return WeekForecast(
                restaurant_id=restaurant_id,
                start_date=start,
                insights=["Not enough sales history yet; forecasts start once transactions are synced"],
            )

        context = self.context.collect_forecast(restaurant, start, FORECAST_DAYS)
        patterns = [
            p for p in self._applicable_patterns(restaurant)
            if p.metric == Metric.REVENUE and p.factor_type in FORECASTABLE_FACTORS
        ]

        days = []
        for offset in range(FORECAST_DAYS):
            day = start + timedelta(days=offset)
            snapshot = context.get(day) or ContextSnapshot(date=day)
            days.append(self._forecast_day(day, snapshot, baseline, patterns))

        if self.track_usage:
            applied = {f.source_pattern for d in days for f in d.factors if f.source_pattern}
            for pattern_id in sorted(applied):
                self.store.mark_applied(pattern_id)

        total = sum(d.predicted_revenue for d in days)
        return WeekForecast(
            restaurant_id=restaurant_id,
            start_date=start,
            days=days,
            total_revenue=total,
            average_confidence=mean([d.confidence for d in days]),
            insights=self._insights(days, baseline, total),
            action_items=self._action_items(days),
        )

    def _forecast_day(
        self, day: date, snapshot: ContextSnapshot, baseline: Baseline, patterns: List[Pattern]
    ) -> DayForecast:
        name = DAY_NAMES[day.weekday()]
        factors: List[PredictionFactor] = []
        predicted = baseline.daily_avg_revenue

        usual = baseline.day_average(day.weekday())
        if usual.avg_revenue > 0:
            impact = percent_change(usual.avg_revenue, baseline.daily_avg_revenue)
            predicted = usual.avg_revenue
            recommendation = None
            if impact > 15:
                recommendation = f"{name}s run busy; schedule extra staff"
            elif impact < -15:
                recommendation = f"{name}s run slow; consider a targeted promotion"
            factors.append(PredictionFactor(
                type="temporal",
                description=f"{name} pattern",
                impact=impact,
                confidence=TEMPORAL_CONFIDENCE,
                recommendation=recommendation,
            ))

        for pattern in patterns:
            if factor_matches(pattern.external_factor, snapshot):
                predicted *= 1 + pattern.business_outcome.change / 100
                factors.append(self._pattern_factor(pattern))

        if baseline.trend_percent:
            trend = baseline.trend_percent
            predicted *= 1 + trend / 100
            factors.append(PredictionFactor(
                type="trend",
                description=f"Overall {'growth' if trend > 0 else 'decline'} trend",
                impact=trend,
                confidence=TREND_CONFIDENCE,
            ))

        confidence = mean([f.confidence for f in factors]) if factors else DEFAULT_DAY_CONFIDENCE
        spread = (1 - confidence / 100) * 0.2
        traffic = int(round(predicted / baseline.avg_ticket)) if baseline.avg_ticket else 0

        return DayForecast(
            date=day,
            day_of_week=name,
            predicted_revenue=predicted,
            revenue_low=predicted * (1 - spread),
            revenue_high=predicted * (1 + spread),
            baseline_revenue=baseline.daily_avg_revenue,
            predicted_traffic=traffic,
            confidence=confidence,
            peak_hours=list(baseline.peak_hours),
            factors=factors,
            recommendations=[f.recommendation for f in factors if f.recommendation],
        )

    @staticmethod
    def _insights(days: List[DayForecast], baseline: Baseline, total: float) -> List[str]:
        insights = []

        best = max(days, key=lambda d: d.predicted_revenue)
        if best.change > 10:
            insights.append(f"{best.day_of_week} looks strongest at {best.change:+.0f}% vs an average day")
        worst = min(days, key=lambda d: d.predicted_revenue)
        if worst.change < -10:
            insights.append(f"{worst.day_of_week} looks slowest at {worst.change:+.0f}% vs an average day")

        weather_days = sum(
            1 for d in days
            if any(f.type == FactorType.WEATHER.value and abs(f.impact) > 5 for f in d.factors)
        )
        if weather_days:
            insights.append(f"Weather shifts expected sales on {weather_days} day(s) this week")

        typical_week = baseline.daily_avg_revenue * len(days)
        insights.append(
            f"Week forecast ${total:,.0f} ({percent_change(total, typical_week):+.1f}% vs a typical week)"
        )
        return insights

    @staticmethod
    def _action_items(days: List[DayForecast]) -> List[str]:
        items: List[str] = []

        for d in days:
            if d.change > 20:
                items.append(f"Expect high traffic {d.day_of_week} {d.date}: add staff ({d.change:+.0f}%)")
        for d in days:
            for f in d.factors:
                if f.type == FactorType.WEATHER.value and f.recommendation:
                    items.append(f"{d.day_of_week}: {f.recommendation}")
        for d in days:
            if d.change < -15:
                items.append(f"Run a promotion {d.day_of_week} {d.date} to offset a {abs(d.change):.0f}% dip")

        unique = list(OrderedDict.fromkeys(items))
        return unique[:MAX_ACTION_ITEMS]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _applicable_patterns(self, restaurant: RestaurantProfile) -> List[Pattern]:
        min_confidence = self.config.prediction_min_confidence
        patterns = self.store.find_for_restaurant(
            restaurant.id, restaurant.region, restaurant.cuisine_type, min_confidence=min_confidence
        )
        return [p for p in patterns if p.confidence >= min_confidence]

    @staticmethod
    def _pattern_factor(pattern: Pattern) -> PredictionFactor:
        return PredictionFactor(
            type=pattern.factor_type.value,
            description=pattern.narrative.description,
            impact=pattern.business_outcome.change,
            confidence=pattern.confidence,
            source_pattern=pattern.id,
            recommendation=pattern.narrative.recommendation,
        )

    @staticmethod
    def _subject(pattern: Pattern) -> Optional[str]:
        if pattern.metric != Metric.ITEM_SALES:
            return None
        factor = pattern.external_factor
        return f"{factor.item_category}:{factor.item_name}"

    def _get_restaurant(self, restaurant_id: int) -> RestaurantProfile:
        restaurant = self.restaurants.get_restaurant(restaurant_id)
        if restaurant is None:
            raise RestaurantNotFoundError(
                f"Restaurant {restaurant_id} not found", details={"restaurant_id": restaurant_id}
            )
        return restaurant
