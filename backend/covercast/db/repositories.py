"""
Repository pattern for data access.

Provides clean interfaces for database operations, abstracting SQLAlchemy details.
``RestaurantRepository`` and ``TransactionRepository`` implement the source
contracts the engines consume; ``PatternRepository`` is the pattern store.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pytz
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from loguru import logger
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from covercast.db.models import Correlation, PatternContribution, Restaurant, Transaction
from covercast.domain.patterns import (
    BusinessOutcome,
    CorrelationType,
    ExternalFactor,
    LearningStats,
    Pattern,
    PatternNarrative,
    PatternStatistics,
    Scope,
)
from covercast.domain.sources import RestaurantSource, TransactionSource
from covercast.domain.transactions import RestaurantProfile, TransactionItem, TransactionRecord
from covercast.utils.errors import ConcurrentUpdateError, RecordNotFoundError

# Optimistic-lock conflicts are retried a few times with a short backoff.
retry_on_conflict = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
    retry=retry_if_exception_type(ConcurrentUpdateError),
    reraise=True,
)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(pytz.UTC).replace(tzinfo=None)


class RestaurantRepository(RestaurantSource):
    """Repository for Restaurant operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, restaurant_id: int) -> Optional[Restaurant]:
        """Get restaurant by ID."""
        return self.db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()

    def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantProfile]:
        row = self.get_by_id(restaurant_id)
        if row is None:
            return None
        return RestaurantProfile(
            id=row.id,
            name=row.name,
            latitude=row.latitude,
            longitude=row.longitude,
            state=row.state,
            cuisine_type=row.cuisine_type,
            timezone=row.timezone,
        )

    def list_active_restaurant_ids(self) -> List[int]:
        rows = (
            self.db.query(Restaurant.id)
            .filter(Restaurant.is_active == True)
            .order_by(Restaurant.id)
            .all()
        )
        return [row.id for row in rows]

    def create(self, name: str, **kwargs) -> Restaurant:
        """Create a new restaurant."""
        restaurant = Restaurant(name=name, **kwargs)
        self.db.add(restaurant)
        self.db.commit()
        self.db.refresh(restaurant)
        logger.info(f"Created restaurant: {restaurant.id} {name}")
        return restaurant


class TransactionRepository(TransactionSource):
    """Repository for Transaction operations. Stored timestamps are naive UTC."""

    def __init__(self, db: Session):
        self.db = db

    def get_transactions(
        self, restaurant_id: int, start: datetime, end: datetime
    ) -> List[TransactionRecord]:
        rows = (
            self.db.query(Transaction)
            .filter(
                Transaction.restaurant_id == restaurant_id,
                Transaction.transaction_date >= _as_naive_utc(start),
                Transaction.transaction_date < _as_naive_utc(end),
            )
            .order_by(Transaction.transaction_date)
            .all()
        )
        return [self._to_record(row) for row in rows]

    def add_many(self, restaurant_id: int, records: Iterable[TransactionRecord]) -> int:
        """Insert transactions for a restaurant and return how many were written."""
        rows = [
            Transaction(
                restaurant_id=restaurant_id,
                transaction_date=_as_naive_utc(record.transaction_date),
                total_amount=record.total_amount,
                items=[item.model_dump() for item in record.items],
            )
            for record in records
        ]
        self.db.add_all(rows)
        self.db.commit()
        return len(rows)

    @staticmethod
    def _to_record(row: Transaction) -> TransactionRecord:
        return TransactionRecord(
            transaction_date=pytz.UTC.localize(row.transaction_date),
            total_amount=row.total_amount or 0.0,
            items=tuple(TransactionItem.model_validate(item) for item in (row.items or [])),
        )


class PatternRepository:
    """Pattern store: persisted correlations with lifecycle and pooling operations."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def to_pattern(row: Correlation) -> Pattern:
        return Pattern(
            id=row.id,
            scope=Scope(row.scope),
            restaurant_id=row.restaurant_id,
            region=row.region,
            cuisine_type=row.cuisine_type,
            correlation_type=CorrelationType(row.correlation_type),
            external_factor=ExternalFactor.model_validate(row.external_factor),
            business_outcome=BusinessOutcome(
                metric=row.metric,
                value=row.outcome_value,
                change=row.outcome_change,
                baseline=row.outcome_baseline,
            ),
            statistics=PatternStatistics(
                correlation=row.correlation,
                p_value=row.p_value,
                sample_size=row.sample_size,
                confidence=row.statistical_confidence,
                r_squared=row.r_squared,
            ),
            narrative=PatternNarrative(
                description=row.description,
                when_condition=row.when_condition,
                then_outcome=row.then_outcome,
                strength=row.strength,
                actionable=bool(row.actionable),
                recommendation=row.recommendation,
            ),
            learning=LearningStats(
                first_discovered=row.first_discovered,
                last_updated=row.last_updated,
                data_points=row.data_points or 0,
                restaurants_contributing=row.restaurants_contributing or 0,
                times_validated=row.times_validated or 0,
                times_invalidated=row.times_invalidated or 0,
                accuracy=row.accuracy,
            ),
            is_active=bool(row.is_active),
            confidence=row.confidence,
            last_applied=row.last_applied,
            times_applied=row.times_applied or 0,
            version=row.version,
            previous_version_id=row.previous_version_id,
        )

    @staticmethod
    def _to_columns(pattern: Pattern) -> Dict[str, Any]:
        return {
            "scope": pattern.scope.value,
            "restaurant_id": pattern.restaurant_id,
            "region": pattern.region,
            "cuisine_type": pattern.cuisine_type,
            "correlation_type": pattern.correlation_type.value,
            "factor_type": pattern.factor_type.value,
            "factor_key": pattern.external_factor.pooling_key,
            "external_factor": pattern.external_factor.model_dump(mode="json"),
            "metric": pattern.business_outcome.metric.value,
            "outcome_value": pattern.business_outcome.value,
            "outcome_change": pattern.business_outcome.change,
            "outcome_baseline": pattern.business_outcome.baseline,
            "correlation": pattern.statistics.correlation,
            "p_value": pattern.statistics.p_value,
            "sample_size": pattern.statistics.sample_size,
            "statistical_confidence": pattern.statistics.confidence,
            "r_squared": pattern.statistics.r_squared,
            "description": pattern.narrative.description,
            "when_condition": pattern.narrative.when_condition,
            "then_outcome": pattern.narrative.then_outcome,
            "strength": pattern.narrative.strength.value,
            "actionable": pattern.narrative.actionable,
            "recommendation": pattern.narrative.recommendation,
            "first_discovered": pattern.learning.first_discovered,
            "last_updated": pattern.learning.last_updated,
            "data_points": pattern.learning.data_points,
            "restaurants_contributing": pattern.learning.restaurants_contributing,
            "times_validated": pattern.learning.times_validated,
            "times_invalidated": pattern.learning.times_invalidated,
            "accuracy": pattern.learning.accuracy,
            "is_active": pattern.is_active,
            "confidence": pattern.confidence,
            "last_applied": pattern.last_applied,
            "times_applied": pattern.times_applied,
            "version": pattern.version,
            "previous_version_id": pattern.previous_version_id,
        }

    def _get_row(self, pattern_id: int) -> Correlation:
        row = self.db.get(Correlation, pattern_id)
        if row is None:
            raise RecordNotFoundError(f"Pattern {pattern_id} not found", details={"pattern_id": pattern_id})
        return row

    def _commit(self, pattern_id: Optional[int] = None) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.debug(f"Optimistic lock conflict on pattern {pattern_id}, retrying")
            raise ConcurrentUpdateError(
                f"Pattern {pattern_id} was modified concurrently",
                details={"pattern_id": pattern_id},
            ) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, pattern_id: int) -> Pattern:
        return self.to_pattern(self._get_row(pattern_id))

    def find_active_patterns(
        self,
        correlation_type: Optional[CorrelationType] = None,
        scope: Optional[Scope] = None,
        min_confidence: float = 60,
        limit: int = 50,
    ) -> List[Pattern]:
        """Active patterns above a confidence floor, most confident first."""
        query = self.db.query(Correlation).filter(
            Correlation.is_active == True,
            Correlation.confidence >= min_confidence,
        )
        if correlation_type is not None:
            query = query.filter(Correlation.correlation_type == correlation_type.value)
        if scope is not None:
            query = query.filter(Correlation.scope == scope.value)

        rows = (
            query.order_by(Correlation.confidence.desc(), Correlation.accuracy.desc())
            .limit(limit)
            .all()
        )
        return [self.to_pattern(row) for row in rows]

    def find_by_restaurant(self, restaurant_id: int, active_only: bool = True) -> List[Pattern]:
        query = self.db.query(Correlation).filter(
            Correlation.scope == Scope.RESTAURANT.value,
            Correlation.restaurant_id == restaurant_id,
        )
        if active_only:
            query = query.filter(Correlation.is_active == True)
        return [self.to_pattern(row) for row in query.order_by(Correlation.id).all()]

    def find_visible(
        self,
        restaurant_id: int,
        region: Optional[str] = None,
        cuisine_type: Optional[str] = None,
        min_confidence: float = 0,
    ) -> List[Pattern]:
        """
        Active patterns visible to a restaurant, most specific level first.

        Levels: restaurant, regional+cuisine, regional, global+cuisine, global.
        The same row can surface at more than one level.
        """
        base = self.db.query(Correlation).filter(
            Correlation.is_active == True,
            Correlation.confidence >= min_confidence,
        )
        levels = [
            base.filter(
                Correlation.scope == Scope.RESTAURANT.value,
                Correlation.restaurant_id == restaurant_id,
            )
        ]
        if region and cuisine_type:
            levels.append(base.filter(
                Correlation.scope == Scope.REGIONAL.value,
                Correlation.region == region,
                Correlation.cuisine_type == cuisine_type,
            ))
        if region:
            levels.append(base.filter(
                Correlation.scope == Scope.REGIONAL.value,
                Correlation.region == region,
            ))
        if cuisine_type:
            levels.append(base.filter(
                Correlation.scope == Scope.GLOBAL.value,
                Correlation.cuisine_type == cuisine_type,
            ))
        levels.append(base.filter(Correlation.scope == Scope.GLOBAL.value))

        patterns: List[Pattern] = []
        for query in levels:
            rows = query.order_by(Correlation.confidence.desc(), Correlation.id).all()
            patterns.extend(self.to_pattern(row) for row in rows)
        return patterns

    def find_for_restaurant(
        self,
        restaurant_id: int,
        region: Optional[str] = None,
        cuisine_type: Optional[str] = None,
        min_confidence: float = 0,
    ) -> List[Pattern]:
        """
        Applicable patterns, deduplicated by (type, external factor).

        When the same factor appears at several levels the most confident copy
        wins; on ties the more specific level wins.
        """
        best: Dict[Any, Pattern] = {}
        for pattern in self.find_visible(restaurant_id, region, cuisine_type, min_confidence):
            current = best.get(pattern.dedupe_key)
            if current is None or pattern.confidence > current.confidence:
                best[pattern.dedupe_key] = pattern

        return sorted(best.values(), key=lambda p: p.confidence, reverse=True)

    def find_matching(
        self,
        scope: Scope,
        correlation_type: CorrelationType,
        factor_key: str,
        region: Optional[str] = None,
        cuisine_type: Optional[str] = None,
    ) -> Optional[Pattern]:
        """The active pooled pattern a restaurant pattern would merge into; pools are keyed on cuisine."""
        query = self.db.query(Correlation).filter(
            Correlation.is_active == True,
            Correlation.scope == scope.value,
            Correlation.correlation_type == correlation_type.value,
            Correlation.factor_key == factor_key,
        )
        if scope == Scope.REGIONAL:
            query = query.filter(Correlation.region == region)
        if cuisine_type:
            query = query.filter(Correlation.cuisine_type == cuisine_type)
        else:
            query = query.filter(Correlation.cuisine_type.is_(None))
        row = query.order_by(Correlation.data_points.desc(), Correlation.id).first()
        return self.to_pattern(row) if row else None

    def find_contributable(
        self, restaurant_id: int, min_accuracy: float = 70, min_data_points: int = 20
    ) -> List[Pattern]:
        """Restaurant patterns proven enough to be pooled."""
        rows = (
            self.db.query(Correlation)
            .filter(
                Correlation.scope == Scope.RESTAURANT.value,
                Correlation.restaurant_id == restaurant_id,
                Correlation.is_active == True,
                Correlation.accuracy >= min_accuracy,
                Correlation.data_points >= min_data_points,
            )
            .order_by(Correlation.id)
            .all()
        )
        return [self.to_pattern(row) for row in rows]

    def get_most_reliable(self, limit: int = 20, min_data_points: int = 30) -> List[Pattern]:
        """Active patterns ranked by reliability score."""
        rows = (
            self.db.query(Correlation)
            .filter(
                Correlation.is_active == True,
                Correlation.data_points >= min_data_points,
            )
            .all()
        )
        patterns = [self.to_pattern(row) for row in rows]
        patterns.sort(key=lambda p: p.reliability_score, reverse=True)
        return patterns[:limit]

    def has_contributed(
        self, pooled_pattern_id: int, source_pattern_id: int, restaurant_id: Optional[int] = None
    ) -> bool:
        """True once the source pattern, or any pattern of ``restaurant_id``, is in the pool."""
        source_filter = PatternContribution.source_pattern_id == source_pattern_id
        if restaurant_id is not None:
            source_filter = or_(source_filter, PatternContribution.restaurant_id == restaurant_id)
        return (
            self.db.query(PatternContribution)
            .filter(PatternContribution.pooled_pattern_id == pooled_pattern_id, source_filter)
            .first()
            is not None
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, pattern: Pattern) -> Pattern:
        """Persist a new pattern and return it with its id."""
        row = Correlation(**self._to_columns(pattern))
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.debug(f"Created pattern {row.id} ({row.scope}/{row.correlation_type})")
        return self.to_pattern(row)

    @retry_on_conflict
    def record_validation(self, pattern_id: int, was_correct: bool) -> Pattern:
        """
        Apply one validation outcome.

        accuracy = validated / total * 100
        confidence = min(accuracy * 0.7 + min(total / 100, 1) * 30, 100)
        Deactivates once accuracy < 40 with more than 20 outcomes; never reactivates.
        """
        row = self._get_row(pattern_id)
        if was_correct:
            row.times_validated = (row.times_validated or 0) + 1
        else:
            row.times_invalidated = (row.times_invalidated or 0) + 1

        total = row.times_validated + row.times_invalidated
        accuracy = row.times_validated / total * 100
        row.accuracy = accuracy
        row.confidence = min(accuracy * 0.7 + min(total / 100, 1) * 30, 100)
        row.last_updated = datetime.utcnow()

        if accuracy < 40 and total > 20 and row.is_active:
            row.is_active = False
            logger.info(
                f"Deactivated pattern {pattern_id}: accuracy {accuracy:.1f}% over {total} validations"
            )

        self._commit(pattern_id)
        return self.to_pattern(row)

    @retry_on_conflict
    def mark_applied(self, pattern_id: int) -> Pattern:
        row = self._get_row(pattern_id)
        row.last_applied = datetime.utcnow()
        row.times_applied = (row.times_applied or 0) + 1
        self._commit(pattern_id)
        return self.to_pattern(row)

    @retry_on_conflict
    def merge_contribution(self, pooled_pattern_id: int, source: Pattern) -> Pattern:
        """
        Fold a restaurant pattern into a pooled one as an atomic read-modify-write.

        newCorr = (oldCorr * (n - 1) + incoming) / n, n = post-increment contributors.
        A concurrent writer bumps ``row_version`` and this commit then fails with
        StaleDataError, which is retried against fresh state.
        """
        row = self._get_row(pooled_pattern_id)
        n = (row.restaurants_contributing or 0) + 1
        merged = (row.correlation * (n - 1) + source.statistics.correlation) / n

        row.correlation = max(-1.0, min(1.0, merged))
        row.restaurants_contributing = n
        row.data_points = (row.data_points or 0) + source.learning.data_points
        row.last_updated = datetime.utcnow()
        self.db.add(PatternContribution(
            pooled_pattern_id=pooled_pattern_id,
            source_pattern_id=source.id,
            restaurant_id=source.restaurant_id,
        ))

        self._commit(pooled_pattern_id)
        return self.to_pattern(row)

    def clone_to_scope(
        self,
        source: Pattern,
        scope: Scope,
        region: Optional[str] = None,
        cuisine_type: Optional[str] = None,
    ) -> Pattern:
        """Seed a pooled pattern from one restaurant pattern; the pool takes ``cuisine_type``, not the source's."""
        now = datetime.utcnow()
        clone = source.model_copy(update={
            "id": None,
            "scope": scope,
            "restaurant_id": None,
            "region": region if scope == Scope.REGIONAL else None,
            "cuisine_type": cuisine_type,
            "learning": source.learning.model_copy(update={
                "restaurants_contributing": 1,
                "first_discovered": now,
                "last_updated": now,
            }),
            "last_applied": None,
            "times_applied": 0,
            "version": 1,
            "previous_version_id": None,
        })
        created = self.create(Pattern.model_validate(clone.model_dump()))

        self.db.add(PatternContribution(
            pooled_pattern_id=created.id,
            source_pattern_id=source.id,
            restaurant_id=source.restaurant_id,
        ))
        self.db.commit()
        return created

    def supersede(self, pattern_id: int, changes: Dict[str, Any]) -> Pattern:
        """
        Replace a pattern with a new version.

        The old row is deactivated and the new one links back to it through
        ``previous_version_id``. Nothing is deleted.
        """
        old_row = self._get_row(pattern_id)
        old = self.to_pattern(old_row)

        data = old.model_dump()
        data.update({k: v.model_dump() if hasattr(v, "model_dump") else v for k, v in changes.items()})
        data.update({
            "id": None,
            "version": old.version + 1,
            "previous_version_id": old.id,
            "is_active": True,
        })
        data["learning"] = {**data["learning"], "last_updated": datetime.utcnow()}
        successor = Pattern.model_validate(data)

        old_row.is_active = False
        old_row.last_updated = datetime.utcnow()
        new_row = Correlation(**self._to_columns(successor))
        self.db.add(new_row)
        self._commit(pattern_id)
        self.db.refresh(new_row)

        logger.info(f"Pattern {pattern_id} superseded by {new_row.id} (version {new_row.version})")
        return self.to_pattern(new_row)
