"""
Correlation Discovery Engine.

Joins a restaurant's daily sales with per-day context and looks for
relationships worth acting on:

- temperature, rain and overall weather quality vs revenue
- major local events and nearby games vs revenue
- holidays vs check size
- menu items that sell mostly under one kind of weather
- three compound scenarios (weekend crowds in perfect weather, rainy
  Fridays, cold Mondays)

Each analyzer either returns candidate patterns or raises
InsufficientDataError, which skips that analyzer only. Candidates are
persisted as new restaurant patterns, or as a new version when the
restaurant already has an active pattern for the same condition.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from time import perf_counter
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import pytz
from loguru import logger

from covercast.config import Settings, settings as default_settings
from covercast.db.repositories import PatternRepository
from covercast.domain.aggregates import DailyAggregate
from covercast.domain.context import ContextSnapshot, WeatherCategory
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
from covercast.domain.sources import RestaurantSource, TransactionSource
from covercast.domain.transactions import RestaurantProfile, TransactionRecord
from covercast.services import matching
from covercast.services.aggregator import aggregate_daily
from covercast.services.context import ContextCollector
from covercast.services.statistics import (
    approximate_p_value,
    clamp_correlation,
    classify_strength,
    mean,
    pearson_correlation,
    percent_change,
)
from covercast.services.validator import PatternValidator, ValidationResult
from covercast.utils.datetime import get_timezone, local_date
from covercast.utils.errors import (
    InsufficientDataError,
    InvalidDateRangeError,
    RestaurantNotFoundError,
)

MIN_TEMPERATURE_DAYS = 10
MIN_RAINY_DAYS = 3
MIN_WEATHER_QUALITY_DAYS = 3
MIN_EVENT_DAYS = 3
MIN_GAME_DAYS = 3
MIN_HOLIDAY_TRANSACTIONS = 5
MIN_ITEM_SALES = 10
MIN_SCENARIO_DAYS = 20
MAX_MENU_PATTERNS = 5

MIN_TEMPERATURE_CORRELATION = 0.15
MIN_RATIO_CORRELATION = 0.15
EVENT_CHANGE_THRESHOLD = 15
GAME_CHANGE_THRESHOLD = 15
HOLIDAY_CHANGE_THRESHOLD = 10
DOMINANT_BUCKET_SHARE = 50

# r -> approximate revenue swing in percent
TEMPERATURE_CHANGE_SCALE = 25
DEFAULT_EVENT_ATTENDANCE = 5000


@dataclass
class DiscoveryResult:
    patterns: List[Pattern] = field(default_factory=list)
    new_count: int = 0
    validated_count: int = 0
    invalidated_count: int = 0


@dataclass
class Candidate:
    """An analyzer finding before it is stamped with restaurant and learning data."""

    correlation_type: CorrelationType
    factor: ExternalFactor
    outcome: BusinessOutcome
    statistics: PatternStatistics
    narrative: PatternNarrative

    @property
    def key(self) -> Tuple[str, str]:
        return (self.correlation_type.value, self.factor.pooling_key)


@dataclass
class DiscoveryRun:
    """In-memory data for one restaurant's discovery window."""

    restaurant: RestaurantProfile
    transactions: List[TransactionRecord]
    daily: List[DailyAggregate]
    context: Dict[date, ContextSnapshot]
    tz: pytz.BaseTzInfo

    def days(self) -> Iterator[Tuple[DailyAggregate, ContextSnapshot]]:
        for day in self.daily:
            snapshot = self.context.get(day.date)
            if snapshot is not None:
                yield day, snapshot

    def days_with_weather(self) -> Iterator[Tuple[DailyAggregate, ContextSnapshot]]:
        for day, snapshot in self.days():
            if snapshot.weather is not None:
                yield day, snapshot

    def snapshot_for(self, txn: TransactionRecord) -> Optional[ContextSnapshot]:
        return self.context.get(local_date(txn.transaction_date, self.tz))


def _stats(correlation: float, p_value: float, sample_size: int, confidence: float,
           r_squared: Optional[float] = None) -> PatternStatistics:
    correlation = clamp_correlation(correlation)
    return PatternStatistics(
        correlation=correlation,
        p_value=p_value,
        sample_size=max(1, sample_size),
        confidence=max(0.0, min(100.0, confidence)),
        r_squared=min(1.0, correlation * correlation if r_squared is None else r_squared),
    )


def _tiered_strength(change: float, strong: float, moderate: float) -> Strength:
    magnitude = abs(change)
    if magnitude > strong:
        return Strength.STRONG
    if magnitude > moderate:
        return Strength.MODERATE
    return Strength.WEAK


def _direction(change: float, up: str = "increases", down: str = "decreases") -> str:
    return up if change > 0 else down


class CorrelationEngine:
    """
    Discovers patterns for one restaurant at a time.

    Collaborators are injected once at process start; the engine keeps no
    state between ``discover`` calls.
    """

    def __init__(
        self,
        store: PatternRepository,
        transactions: TransactionSource,
        restaurants: RestaurantSource,
        context: ContextCollector,
        validator: Optional[PatternValidator] = None,
        config: Settings = default_settings,
    ):
        self.store = store
        self.transactions = transactions
        self.restaurants = restaurants
        self.context = context
        self.validator = validator
        self.config = config

    def discover(self, restaurant_id: int, start: datetime, end: datetime) -> DiscoveryResult:
        """
        Discover patterns from transactions in ``[start, end)``.

        Args:
            restaurant_id: Restaurant to analyze
            start: Inclusive window start
            end: Exclusive window end

        Returns:
            DiscoveryResult with the patterns written this run. Too little data
            yields an empty result, never an error.

        Raises:
            InvalidDateRangeError: start is not before end
            RestaurantNotFoundError: unknown restaurant
        """
        if start >= end:
            raise InvalidDateRangeError(
                f"Discovery window start {start} must be before end {end}",
                details={"start": str(start), "end": str(end)},
            )

        restaurant = self.restaurants.get_restaurant(restaurant_id)
        if restaurant is None:
            raise RestaurantNotFoundError(
                f"Restaurant {restaurant_id} not found", details={"restaurant_id": restaurant_id}
            )

        started = perf_counter()
        transactions = self.transactions.get_transactions(restaurant_id, start, end)
        if len(transactions) < self.config.min_discovery_transactions:
            logger.info(
                f"Restaurant {restaurant_id}: {len(transactions)} transactions, "
                f"need {self.config.min_discovery_transactions}; skipping discovery"
            )
            return DiscoveryResult()

        tz = get_timezone(restaurant.timezone, self.config.default_timezone)
        daily = aggregate_daily(transactions, tz)
        context = self.context.collect(restaurant, [d.date for d in daily])
        run = DiscoveryRun(restaurant, transactions, daily, context, tz)

        candidates: List[Candidate] = []
        for name, analyzer in self._analyzers():
            try:
                found = analyzer(run)
            except InsufficientDataError as e:
                logger.debug(f"Skipping {name} analysis: {e.message} ({e.actual}/{e.required})")
                continue
            if found:
                logger.info(f"Found {len(found)} {name} pattern(s) for restaurant {restaurant_id}")
            candidates.extend(found)

        existing = self.store.find_by_restaurant(restaurant_id)
        validation = ValidationResult()
        if self.validator is not None and existing:
            validation = self.validator.validate_against(existing, transactions, daily, context, tz)

        patterns, new_count = self._persist(restaurant, candidates, existing)

        logger.info(
            f"Discovery for restaurant {restaurant_id}: {len(patterns)} patterns "
            f"({new_count} new) from {len(transactions)} transactions over {len(daily)} days "
            f"in {perf_counter() - started:.2f}s"
        )
        return DiscoveryResult(
            patterns=patterns,
            new_count=new_count,
            validated_count=validation.validated,
            invalidated_count=validation.invalidated,
        )

    def _analyzers(self) -> List[Tuple[str, Callable[[DiscoveryRun], List[Candidate]]]]:
        return [
            ("temperature", self.analyze_temperature),
            ("precipitation", self.analyze_precipitation),
            ("weather quality", self.analyze_weather_quality),
            ("local event", self.analyze_events),
            ("sports", self.analyze_sports),
            ("holiday", self.analyze_holidays),
            ("menu item", self.analyze_menu_items),
            ("multi-factor", self.analyze_multi_factor),
        ]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(
        self,
        restaurant: RestaurantProfile,
        candidates: List[Candidate],
        existing: List[Pattern],
    ) -> Tuple[List[Pattern], int]:
        current: Dict[Tuple[str, str], Pattern] = {
            (p.correlation_type.value, p.external_factor.pooling_key): p for p in existing
        }
        saved: List[Pattern] = []
        new_count = 0

        for candidate in candidates:
            previous = current.get(candidate.key)
            if previous is not None:
                # Validation may have just updated or deactivated it.
                previous = self.store.get(previous.id)

            if previous is not None and previous.is_active:
                pattern = self.store.supersede(previous.id, {
                    "external_factor": candidate.factor,
                    "business_outcome": candidate.outcome,
                    "statistics": candidate.statistics,
                    "narrative": candidate.narrative,
                    "confidence": candidate.statistics.confidence,
                    "learning": previous.learning.model_copy(
                        update={"data_points": candidate.statistics.sample_size}
                    ),
                })
            else:
                pattern = self.store.create(self._new_pattern(restaurant, candidate))
                new_count += 1

            current[candidate.key] = pattern
            saved.append(pattern)

        return saved, new_count

    @staticmethod
    def _new_pattern(restaurant: RestaurantProfile, candidate: Candidate) -> Pattern:
        now = datetime.utcnow()
        return Pattern(
            scope=Scope.RESTAURANT,
            restaurant_id=restaurant.id,
            region=restaurant.region,
            cuisine_type=restaurant.cuisine_type,
            correlation_type=candidate.correlation_type,
            external_factor=candidate.factor,
            business_outcome=candidate.outcome,
            statistics=candidate.statistics,
            narrative=candidate.narrative,
            learning=LearningStats(
                first_discovered=now,
                last_updated=now,
                data_points=candidate.statistics.sample_size,
                restaurants_contributing=1,
                accuracy=100.0,
            ),
            confidence=candidate.statistics.confidence,
        )

    # ------------------------------------------------------------------
    # Weather
    # ------------------------------------------------------------------

    def analyze_temperature(self, run: DiscoveryRun) -> List[Candidate]:
        """Pearson r between daily temperature and daily revenue."""
        pairs = [(snapshot.weather.temperature, day.revenue) for day, snapshot in run.days_with_weather()]
        if len(pairs) < MIN_TEMPERATURE_DAYS:
            raise InsufficientDataError(
                "Not enough days with temperature", required=MIN_TEMPERATURE_DAYS, actual=len(pairs)
            )

        temperatures = [t for t, _ in pairs]
        revenues = [r for _, r in pairs]
        r = pearson_correlation(temperatures, revenues)
        if r is None or abs(r) < MIN_TEMPERATURE_CORRELATION:
            logger.debug(f"Temperature correlation too weak: {r}")
            return []

        avg_revenue = mean(revenues)
        avg_temperature = round(mean(temperatures), 1)
        change = r * TEMPERATURE_CHANGE_SCALE
        actionable = abs(r) > 0.5

        recommendation = None
        if actionable:
            recommendation = (
                "Promote outdoor seating and cold drinks in warm weather"
                if r > 0
                else "Feature comfort food and hot beverages in cold weather"
            )

        return [Candidate(
            correlation_type=CorrelationType.WEATHER_SALES,
            factor=ExternalFactor(
                type=FactorType.WEATHER,
                condition=Condition.TEMPERATURE,
                operator="above",
                threshold=avg_temperature,
            ),
            outcome=BusinessOutcome(
                metric=Metric.REVENUE,
                value=avg_revenue,
                change=change,
                baseline=avg_revenue * (1 - change / 100),
            ),
            statistics=_stats(
                r,
                approximate_p_value(r, len(pairs)),
                len(pairs),
                min(abs(r) * 100, 95),
            ),
            narrative=PatternNarrative(
                description=f"Temperature {'positively' if r > 0 else 'negatively'} correlates with revenue",
                when_condition=f"When temperature is above {avg_temperature:.0f}°F",
                then_outcome=f"Revenue {_direction(change)} by approximately {abs(change):.1f}%",
                strength=classify_strength(abs(r)),
                actionable=actionable,
                recommendation=recommendation,
            ),
        )]

    def analyze_precipitation(self, run: DiscoveryRun) -> List[Candidate]:
        """Average revenue on rainy days against dry days."""
        rainy, dry = [], []
        for day, snapshot in run.days_with_weather():
            (rainy if snapshot.is_raining else dry).append(day.revenue)

        if len(rainy) < MIN_RAINY_DAYS:
            raise InsufficientDataError("Not enough rainy days", required=MIN_RAINY_DAYS, actual=len(rainy))

        avg_rainy = mean(rainy)
        avg_dry = mean(dry) if dry else avg_rainy * 1.05
        change = percent_change(avg_rainy, avg_dry)
        c = clamp_correlation(change / 100)
        if abs(c) <= MIN_RATIO_CORRELATION:
            return []

        return [Candidate(
            correlation_type=CorrelationType.WEATHER_SALES,
            factor=ExternalFactor(
                type=FactorType.WEATHER,
                condition=Condition.PRECIPITATION,
                weather_condition="rain",
            ),
            outcome=BusinessOutcome(metric=Metric.REVENUE, value=avg_rainy, change=change, baseline=avg_dry),
            statistics=_stats(c, 0.02, len(rainy), min(abs(c) * 100, 85)),
            narrative=PatternNarrative(
                description=f"Rain {_direction(change)} revenue",
                when_condition="On rainy days",
                then_outcome=f"Revenue {_direction(change)} by {abs(change):.1f}%",
                strength=classify_strength(abs(c)),
                actionable=abs(c) > 0.3,
                recommendation=(
                    "Push delivery promotions and comfort food on rainy days"
                    if change < 0
                    else "Rainy days bring more guests; schedule extra staff and comfort food inventory"
                ),
            ),
        )]

    def analyze_weather_quality(self, run: DiscoveryRun) -> List[Candidate]:
        """Perfect days (clear, 65-85°F) against poor days (rain, <40°F or >95°F)."""
        excellent, poor = [], []
        for day, snapshot in run.days_with_weather():
            if snapshot.weather.is_perfect:
                excellent.append(day.revenue)
            elif snapshot.weather.is_poor:
                poor.append(day.revenue)

        if len(excellent) < MIN_WEATHER_QUALITY_DAYS or len(poor) < MIN_WEATHER_QUALITY_DAYS:
            raise InsufficientDataError(
                "Need excellent and poor weather days",
                required=MIN_WEATHER_QUALITY_DAYS,
                actual=min(len(excellent), len(poor)),
            )

        avg_excellent = mean(excellent)
        avg_poor = mean(poor)
        change = percent_change(avg_excellent, avg_poor)
        c = clamp_correlation(change / 100)
        if abs(c) <= MIN_RATIO_CORRELATION:
            return []

        return [Candidate(
            correlation_type=CorrelationType.WEATHER_SALES,
            factor=ExternalFactor(
                type=FactorType.WEATHER,
                condition=Condition.WEATHER_QUALITY,
                weather_condition=WeatherCategory.EXCELLENT.value,
            ),
            outcome=BusinessOutcome(metric=Metric.REVENUE, value=avg_excellent, change=change, baseline=avg_poor),
            statistics=_stats(c, 0.01, len(excellent) + len(poor), min(abs(c) * 80, 90)),
            narrative=PatternNarrative(
                description=f"Excellent weather {_direction(change)} revenue vs poor weather",
                when_condition="On perfect weather days (65-85°F, clear skies)",
                then_outcome=f"Revenue {_direction(change)} by {abs(change):.1f}%",
                strength=classify_strength(abs(c)),
                actionable=abs(c) > 0.3,
                recommendation=(
                    "Open every patio seat on excellent days and promote outdoor dining"
                    if change > 0
                    else None
                ),
            ),
        )]

    # ------------------------------------------------------------------
    # Events, sports and holidays
    # ------------------------------------------------------------------

    def analyze_events(self, run: DiscoveryRun) -> List[Candidate]:
        """Days with high or critical impact events against days without."""
        event_days, quiet_days, events = [], [], []
        for day, snapshot in run.days():
            major = snapshot.major_events
            if major:
                event_days.append(day.revenue)
                events.extend(major)
            else:
                quiet_days.append(day.revenue)

        if len(event_days) < MIN_EVENT_DAYS:
            raise InsufficientDataError("Not enough major event days", required=MIN_EVENT_DAYS, actual=len(event_days))

        event_avg = mean(event_days)
        quiet_avg = mean(quiet_days) if quiet_days else event_avg * 0.85
        change = percent_change(event_avg, quiet_avg)
        if abs(change) <= EVENT_CHANGE_THRESHOLD:
            return []

        category = Counter(e.category for e in events).most_common(1)[0][0]
        of_category = [e for e in events if e.category == category]
        venue = Counter(e.venue for e in of_category).most_common(1)[0][0]
        attendance = int(mean([e.expected_attendance for e in of_category])) or DEFAULT_EVENT_ATTENDANCE

        return [Candidate(
            correlation_type=CorrelationType.EVENT_SALES,
            factor=ExternalFactor(
                type=FactorType.EVENT,
                condition=Condition.LOCAL_EVENT,
                event_type=category.value,
                venue_name=venue,
                expected_attendance=attendance,
            ),
            outcome=BusinessOutcome(metric=Metric.REVENUE, value=event_avg, change=change, baseline=quiet_avg),
            statistics=_stats(
                0.70 if change > 0 else -0.70,
                0.02,
                len(event_days) + len(quiet_days),
                min(80, len(event_days) * 12),
                0.49,
            ),
            narrative=PatternNarrative(
                description=f"Major {category.value} events {_direction(change, 'increase', 'decrease')} revenue",
                when_condition=f"When large {category.value} events take place at {venue}",
                then_outcome=f"Revenue {_direction(change)} by {abs(change):.1f}%",
                strength=_tiered_strength(change, strong=35, moderate=20),
                actionable=True,
                recommendation=(
                    f"Watch for upcoming {category.value} events; add staff and run pre and post event specials"
                    if change > 0
                    else "Major events pull guests away; offer takeout deals or event-watching promotions"
                ),
            ),
        )]

    def analyze_sports(self, run: DiscoveryRun) -> List[Candidate]:
        """Days with high or critical impact games within 30 miles against days without."""
        game_days, quiet_days, games = [], [], []
        for day, snapshot in run.days():
            major = snapshot.major_games
            if major:
                game_days.append(day.revenue)
                games.extend(major)
            else:
                quiet_days.append(day.revenue)

        if len(game_days) < MIN_GAME_DAYS:
            raise InsufficientDataError("Not enough major game days", required=MIN_GAME_DAYS, actual=len(game_days))

        game_avg = mean(game_days)
        quiet_avg = mean(quiet_days) if quiet_days else game_avg * 0.7
        change = percent_change(game_avg, quiet_avg)
        if abs(change) <= GAME_CHANGE_THRESHOLD:
            return []

        league = Counter(g.league for g in games).most_common(1)[0][0]
        team = Counter(g.home_team for g in games if g.league == league).most_common(1)[0][0]

        return [Candidate(
            correlation_type=CorrelationType.SPORTS_SALES,
            factor=ExternalFactor(
                type=FactorType.SPORTS,
                condition=Condition.SPORTS_GAME,
                league=league,
                team_name=team,
            ),
            outcome=BusinessOutcome(metric=Metric.REVENUE, value=game_avg, change=change, baseline=quiet_avg),
            statistics=_stats(
                0.75 if change > 0 else -0.75,
                0.01,
                len(game_days) + len(quiet_days),
                min(85, len(game_days) * 15),
                0.56,
            ),
            narrative=PatternNarrative(
                description=f"{league} game days {_direction(change, 'increase', 'decrease')} revenue significantly",
                when_condition=f"When {team} plays within 30 miles",
                then_outcome=f"Revenue {_direction(change)} by {abs(change):.1f}%",
                strength=_tiered_strength(change, strong=40, moderate=25),
                actionable=True,
                recommendation=(
                    f"Staff up and stock extra inventory on {league} game days; run game-day bar specials"
                    if change > 0
                    else "Expect fewer dine-in guests on game days; lean on takeout and delivery"
                ),
            ),
        )]

    def analyze_holidays(self, run: DiscoveryRun) -> List[Candidate]:
        """Average check on holidays against the rest of the window, per transaction."""
        holiday_amounts, normal_amounts = [], []
        holidays: Dict[date, bool] = {}
        for txn in run.transactions:
            day = local_date(txn.transaction_date, run.tz)
            if day not in holidays:
                snapshot = run.context.get(day)
                holiday = snapshot.holiday if snapshot else self.context.holidays.get_holiday(day)
                holidays[day] = holiday is not None
            (holiday_amounts if holidays[day] else normal_amounts).append(txn.total_amount)

        if len(holiday_amounts) < MIN_HOLIDAY_TRANSACTIONS or not normal_amounts:
            raise InsufficientDataError(
                "Not enough holiday transactions",
                required=MIN_HOLIDAY_TRANSACTIONS,
                actual=len(holiday_amounts),
            )

        holiday_avg = mean(holiday_amounts)
        normal_avg = mean(normal_amounts)
        change = percent_change(holiday_avg, normal_avg)
        if abs(change) <= HOLIDAY_CHANGE_THRESHOLD:
            return []

        return [Candidate(
            correlation_type=CorrelationType.HOLIDAY_SALES,
            factor=ExternalFactor(
                type=FactorType.HOLIDAY,
                condition=Condition.HOLIDAY,
                holiday_name="holidays_general",
            ),
            outcome=BusinessOutcome(metric=Metric.REVENUE, value=holiday_avg, change=change, baseline=normal_avg),
            statistics=_stats(0.7 if change > 0 else -0.7, 0.01, len(holiday_amounts), 85, 0.49),
            narrative=PatternNarrative(
                description=f"Holidays {_direction(change, 'increase', 'decrease')} revenue significantly",
                when_condition="During holidays",
                then_outcome=f"Revenue {_direction(change)} by {abs(change):.1f}%",
                strength=Strength.STRONG if abs(change) > 30 else Strength.MODERATE,
                actionable=True,
                recommendation=(
                    "Increase staff and inventory during holidays"
                    if change > 0
                    else "Reduce operating hours or offer special holiday promotions"
                ),
            ),
        )]

    # ------------------------------------------------------------------
    # Menu items
    # ------------------------------------------------------------------

    def analyze_menu_items(self, run: DiscoveryRun) -> List[Candidate]:
        """Items selling more than half their volume under one weather bucket."""
        tallies: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        labels: Dict[str, Tuple[str, str]] = {}

        for txn in run.transactions:
            snapshot = run.snapshot_for(txn)
            if snapshot is None or snapshot.weather is None:
                continue
            bucket = snapshot.weather.bucket
            for item in txn.items:
                labels.setdefault(item.key, (item.name.lower(), item.category.lower()))
                tallies[item.key][bucket] += item.quantity

        if not tallies:
            raise InsufficientDataError("No item sales with weather context", required=1, actual=0)

        found = []
        for key, buckets in tallies.items():
            total = sum(buckets.values())
            if total < MIN_ITEM_SALES:
                continue
            for bucket in ("hot", "cold", "rainy"):
                share = buckets.get(bucket, 0.0) / total * 100
                if share > DOMINANT_BUCKET_SHARE:
                    found.append((share, total, bucket, labels[key]))
                    break

        found.sort(key=lambda f: (-f[0], -f[1], f[3]))
        return [
            self._menu_candidate(share, total, bucket, name, category)
            for share, total, bucket, (name, category) in found[:MAX_MENU_PATTERNS]
        ]

    @staticmethod
    def _menu_candidate(share: float, total: float, bucket: str, name: str, category: str) -> Candidate:
        even_share = 25.0
        lift = (share - even_share) / even_share * 100
        when = {
            "hot": "When temperature is 80°F or above",
            "cold": "When temperature is below 50°F",
            "rainy": "On rainy days",
        }[bucket]
        recommendation = {
            "hot": f"Stock extra {name} on hot days and promote cold {category} items",
            "cold": f"Prep more {name} on cold days and feature warm {category} options",
            "rainy": f"Prepare extra {name} for rainy days and bundle it into delivery deals",
        }[bucket]

        return Candidate(
            correlation_type=CorrelationType.WEATHER_ITEMS,
            factor=ExternalFactor(
                type=FactorType.WEATHER,
                condition=Condition.MENU_WEATHER,
                weather_condition=bucket,
                item_name=name,
                item_category=category,
            ),
            outcome=BusinessOutcome(
                metric=Metric.ITEM_SALES,
                value=total,
                change=share - even_share,
                baseline=even_share,
            ),
            statistics=_stats(
                (share / 100 - 0.25) / 0.25,
                0.03,
                int(round(total)),
                min(75, total * 2),
                0.35,
            ),
            narrative=PatternNarrative(
                description=f"{name} sells {share:.0f}% of its volume on {bucket} days",
                when_condition=when,
                then_outcome=f"{name} ({category}) sales run {lift:.0f}% above an even split",
                strength=Strength.STRONG if share > 70 else Strength.MODERATE if share > 60 else Strength.WEAK,
                actionable=True,
                recommendation=recommendation,
            ),
        )

    # ------------------------------------------------------------------
    # Compound scenarios
    # ------------------------------------------------------------------

    def analyze_multi_factor(self, run: DiscoveryRun) -> List[Candidate]:
        """Weekend crowds in perfect weather, rainy quiet Fridays and cold Mondays."""
        scenario_days = list(run.days_with_weather())
        if len(scenario_days) < MIN_SCENARIO_DAYS:
            raise InsufficientDataError(
                "Not enough days for compound scenarios", required=MIN_SCENARIO_DAYS, actual=len(scenario_days)
            )

        found = [
            self._weekend_perfect_event(scenario_days),
            self._rainy_friday(scenario_days),
            self._cold_monday(scenario_days),
        ]
        return [c for c in found if c is not None]

    @staticmethod
    def _compare(
        days: List[Tuple[DailyAggregate, ContextSnapshot]],
        qualifies: Callable[[ContextSnapshot], bool],
        compares: Callable[[ContextSnapshot], bool],
        min_qualifying: int,
        min_comparison: int,
    ) -> Optional[Tuple[float, float, float, int]]:
        qualifying = [d.revenue for d, s in days if qualifies(s)]
        comparison = [d.revenue for d, s in days if compares(s)]
        if len(qualifying) < min_qualifying or len(comparison) < min_comparison:
            return None
        qualifying_avg = mean(qualifying)
        comparison_avg = mean(comparison)
        if comparison_avg == 0:
            return None
        return (
            qualifying_avg,
            comparison_avg,
            percent_change(qualifying_avg, comparison_avg),
            len(qualifying) + len(comparison),
        )

    def _weekend_perfect_event(self, days) -> Optional[Candidate]:
        compared = self._compare(
            days, matching.is_perfect_weekend_with_crowd, matching.is_quiet_weekday, 3, 5
        )
        if compared is None or abs(compared[2]) <= 25:
            return None
        value, baseline, change, n = compared

        if abs(change) > 50:
            strength = Strength.VERY_STRONG
        elif abs(change) > 35:
            strength = Strength.STRONG
        else:
            strength = Strength.MODERATE

        return Candidate(
            correlation_type=CorrelationType.MULTI_FACTOR,
            factor=ExternalFactor(
                type=FactorType.MULTI_FACTOR,
                condition=Condition.WEEKEND_PERFECT_EVENT,
                factors=("weekend", "perfect_weather", "major_event_or_game"),
            ),
            outcome=BusinessOutcome(metric=Metric.REVENUE, value=value, change=change, baseline=baseline),
            statistics=_stats(0.85 if change > 0 else -0.85, 0.005, n, 90, 0.72),
            narrative=PatternNarrative(
                description=f"Weekend + perfect weather + major event moves revenue {abs(change):.0f}%",
                when_condition="Weekend days (65-85°F, clear) with a nearby game or major event",
                then_outcome=f"Revenue {_direction(change, 'surges', 'drops')} by {abs(change):.0f}% vs quiet weekdays",
                strength=strength,
                actionable=True,
                recommendation=(
                    "Schedule full staff, pre-order extra inventory and open reservations early for these days"
                    if change > 0
                    else "This combination hurts sales; rethink staffing and promotions for it"
                ),
            ),
        )

    def _rainy_friday(self, days) -> Optional[Candidate]:
        compared = self._compare(days, matching.is_rainy_quiet_friday, matching.is_dry_friday, 2, 3)
        if compared is None or abs(compared[2]) <= 15:
            return None
        value, baseline, change, n = compared

        return Candidate(
            correlation_type=CorrelationType.MULTI_FACTOR,
            factor=ExternalFactor(
                type=FactorType.MULTI_FACTOR,
                condition=Condition.RAINY_FRIDAY,
                factors=("friday", "rain", "no_major_event"),
            ),
            outcome=BusinessOutcome(metric=Metric.REVENUE, value=value, change=change, baseline=baseline),
            statistics=_stats(change / 100, 0.02, n, 80, 0.45),
            narrative=PatternNarrative(
                description=f"Rainy Fridays without events {'reduce' if change < 0 else 'lift'} revenue",
                when_condition="Friday + rain + no major games or events",
                then_outcome=f"Revenue {_direction(change, 'rises', 'drops')} {abs(change):.0f}% vs dry Fridays",
                strength=Strength.STRONG if abs(change) > 25 else Strength.MODERATE,
                actionable=True,
                recommendation=(
                    "Push delivery and takeout promotions on rainy Fridays"
                    if change < 0
                    else "Rainy Fridays hold up well; consider rain-day loyalty rewards"
                ),
            ),
        )

    def _cold_monday(self, days) -> Optional[Candidate]:
        compared = self._compare(days, matching.is_cold_monday, matching.is_mild_monday, 2, 3)
        if compared is None or abs(compared[2]) <= 12:
            return None
        value, baseline, change, n = compared

        return Candidate(
            correlation_type=CorrelationType.MULTI_FACTOR,
            factor=ExternalFactor(
                type=FactorType.MULTI_FACTOR,
                condition=Condition.COLD_MONDAY,
                factors=("monday", "cold"),
            ),
            outcome=BusinessOutcome(metric=Metric.REVENUE, value=value, change=change, baseline=baseline),
            statistics=_stats(change / 100, 0.03, n, 75, 0.38),
            narrative=PatternNarrative(
                description=f"Cold Mondays show a {abs(change):.0f}% revenue {'boost' if change > 0 else 'dip'}",
                when_condition="Monday + temperature below 50°F",
                then_outcome=f"Revenue {_direction(change)} {abs(change):.0f}% vs mild Mondays",
                strength=Strength.MODERATE if abs(change) > 20 else Strength.WEAK,
                actionable=True,
                recommendation=(
                    "Feature soups, hot drinks and warm entrees on cold Mondays"
                    if change > 0
                    else "Run Monday specials to pull guests in on cold days"
                ),
            ),
        )
