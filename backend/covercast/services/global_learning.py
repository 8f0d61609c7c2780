"""
Global and regional learning.

Restaurant patterns that have proven themselves (accuracy and evidence
thresholds from settings) are pooled into shared patterns other restaurants
can use before they have enough history of their own.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from covercast.config import Settings, settings as default_settings
from covercast.db.repositories import PatternRepository
from covercast.domain.patterns import Pattern, Scope
from covercast.domain.sources import RestaurantSource
from covercast.utils.errors import RestaurantNotFoundError


@dataclass
class ContributionResult:
    considered: int = 0
    merged: int = 0
    created: int = 0
    skipped: int = 0


class GlobalLearningAggregator:
    """Folds a restaurant's eligible patterns into the global and regional pools."""

    def __init__(
        self,
        store: PatternRepository,
        restaurants: RestaurantSource,
        config: Settings = default_settings,
    ):
        self.store = store
        self.restaurants = restaurants
        self.config = config

    def contribute(self, restaurant_id: int) -> ContributionResult:
        """
        Contribute a restaurant's patterns to the shared pools.

        Each eligible pattern merges into the matching pooled pattern, or seeds
        one when none exists yet. A restaurant is counted at most once per pool,
        so re-running the job or re-discovering a pattern does not inflate
        the running mean.
        """
        restaurant = self.restaurants.get_restaurant(restaurant_id)
        if restaurant is None:
            raise RestaurantNotFoundError(
                f"Restaurant {restaurant_id} not found", details={"restaurant_id": restaurant_id}
            )

        result = ContributionResult()
        candidates = self.store.find_contributable(
            restaurant_id,
            min_accuracy=self.config.global_min_accuracy,
            min_data_points=self.config.global_min_data_points,
        )

        region = restaurant.region if self.config.regional_learning_enabled else None
        for pattern in candidates:
            result.considered += 1
            self._pool(pattern, Scope.GLOBAL, None, result)
            if region:
                self._pool(pattern, Scope.REGIONAL, region, result)

        logger.info(
            f"Global learning for restaurant {restaurant_id}: {result.considered} eligible, "
            f"{result.merged} merged, {result.created} new pooled, {result.skipped} already counted"
        )
        return result

    def _pool(self, pattern: Pattern, scope: Scope, region: Optional[str], result: ContributionResult) -> None:
        # Regional pools are per cuisine; global pools span every cuisine.
        cuisine = pattern.cuisine_type if scope == Scope.REGIONAL else None
        pooled = self.store.find_matching(
            scope, pattern.correlation_type, pattern.external_factor.pooling_key, region, cuisine
        )

        if pooled is None:
            created = self.store.clone_to_scope(pattern, scope, region, cuisine)
            result.created += 1
            logger.debug(f"Seeded {scope.value} pattern {created.id} from pattern {pattern.id}")
            return

        if self.store.has_contributed(pooled.id, pattern.id, pattern.restaurant_id):
            result.skipped += 1
            return

        merged = self.store.merge_contribution(pooled.id, pattern)
        result.merged += 1
        logger.debug(
            f"Merged pattern {pattern.id} into {scope.value} pattern {pooled.id}: "
            f"r={merged.statistics.correlation:.3f}, contributors={merged.learning.restaurants_contributing}"
        )
