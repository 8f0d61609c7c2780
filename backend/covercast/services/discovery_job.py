"""
Nightly discovery job.

Wires the services once per process and runs discovery followed by
global/regional contribution for every active restaurant. A failure for one
restaurant is logged and counted and the job moves on; a cancellation token
is checked between restaurants.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from time import perf_counter
from typing import List, Optional

import pytz
import requests
from loguru import logger
from sqlalchemy.orm import Session

from covercast.config import Settings, settings as default_settings
from covercast.db.repositories import PatternRepository, RestaurantRepository, TransactionRepository
from covercast.domain.sources import RestaurantSource
from covercast.log_config import restaurant_context
from covercast.providers.events import TicketmasterEventsProvider
from covercast.providers.holidays import USHolidayCalendar
from covercast.providers.seasonal import SeasonalWeatherModel
from covercast.providers.sports import SportsDbProvider
from covercast.providers.weather import OpenWeatherProvider
from covercast.services.context import ContextCollector
from covercast.services.correlation_engine import CorrelationEngine
from covercast.services.global_learning import GlobalLearningAggregator
from covercast.services.prediction_engine import PredictionEngine
from covercast.services.validator import PatternValidator
from covercast.utils.cache import Cache


@dataclass
class Services:
    """Service graph built once at process start and passed to callers."""

    restaurants: RestaurantRepository
    transactions: TransactionRepository
    patterns: PatternRepository
    context: ContextCollector
    validator: PatternValidator
    engine: CorrelationEngine
    aggregator: GlobalLearningAggregator
    predictions: PredictionEngine


def build_services(
    db: Session,
    config: Settings = default_settings,
    http: Optional[requests.Session] = None,
) -> Services:
    """
    Construct repositories, providers and engines over one database session.

    Weather and events providers are only created when their API keys are
    configured; without them discovery falls back to the seasonal weather
    model and sees no events.
    """
    http = http or requests.Session()
    cache = Cache(enabled=config.cache_enabled)

    weather = OpenWeatherProvider(config, session=http, cache=cache) if config.openweather_api_key else None
    events = TicketmasterEventsProvider(config, session=http, cache=cache) if config.ticketmaster_api_key else None
    if weather is None:
        logger.warning("OPENWEATHER_API_KEY not set; weather context will come from the seasonal model")

    restaurants = RestaurantRepository(db)
    transactions = TransactionRepository(db)
    patterns = PatternRepository(db)
    context = ContextCollector(
        weather=weather,
        events=events,
        sports=SportsDbProvider(config, session=http),
        holidays=USHolidayCalendar(),
        seasonal=SeasonalWeatherModel(),
        config=config,
    )
    validator = PatternValidator(patterns, transactions, restaurants, context, config)

    return Services(
        restaurants=restaurants,
        transactions=transactions,
        patterns=patterns,
        context=context,
        validator=validator,
        engine=CorrelationEngine(patterns, transactions, restaurants, context, validator, config),
        aggregator=GlobalLearningAggregator(patterns, restaurants, config),
        predictions=PredictionEngine(patterns, transactions, restaurants, context, config),
    )


@dataclass
class JobSummary:
    processed: int = 0
    total_correlations: int = 0
    new_correlations: int = 0
    validated: int = 0
    invalidated: int = 0
    contributed: int = 0
    errors: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0
    failed_restaurants: List[int] = field(default_factory=list)


class DiscoveryJob:
    """Runs discovery and contribution across restaurants."""

    def __init__(
        self,
        restaurants: RestaurantSource,
        engine: CorrelationEngine,
        aggregator: GlobalLearningAggregator,
        config: Settings = default_settings,
        db: Optional[Session] = None,
    ):
        self.restaurants = restaurants
        self.engine = engine
        self.aggregator = aggregator
        self.config = config
        self.db = db

    @classmethod
    def from_services(cls, services: Services, config: Settings = default_settings, db: Optional[Session] = None):
        return cls(services.restaurants, services.engine, services.aggregator, config, db)

    def run(
        self,
        cancel_token: Optional[threading.Event] = None,
        restaurant_ids: Optional[List[int]] = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> JobSummary:
        """
        Process every active restaurant (or ``restaurant_ids``).

        Args:
            cancel_token: Checked before each restaurant; once set, the job stops
            restaurant_ids: Restrict the run to these restaurants
            days: Discovery window in days (default from settings)
            now: End of the discovery window (default: current UTC time)

        Returns:
            JobSummary with per-run counters
        """
        started = perf_counter()
        summary = JobSummary()
        end = now or datetime.now(pytz.UTC)
        start = end - timedelta(days=days or self.config.discovery_window_days)

        ids = restaurant_ids if restaurant_ids is not None else self.restaurants.list_active_restaurant_ids()
        logger.info(f"Starting correlation discovery for {len(ids)} restaurants ({start:%Y-%m-%d} to {end:%Y-%m-%d})")

        for restaurant_id in ids:
            if cancel_token is not None and cancel_token.is_set():
                summary.cancelled = True
                logger.warning(f"Discovery job cancelled after {summary.processed} restaurants")
                break

            with restaurant_context(restaurant_id):
                try:
                    result = self.engine.discover(restaurant_id, start, end)
                    contribution = self.aggregator.contribute(restaurant_id)
                except Exception as e:
                    summary.errors += 1
                    summary.failed_restaurants.append(restaurant_id)
                    logger.exception(f"Discovery failed for restaurant {restaurant_id}: {e}")
                    if self.db is not None:
                        self.db.rollback()
                    continue

            summary.processed += 1
            summary.total_correlations += len(result.patterns)
            summary.new_correlations += result.new_count
            summary.validated += result.validated_count
            summary.invalidated += result.invalidated_count
            summary.contributed += contribution.merged + contribution.created

        summary.duration_seconds = perf_counter() - started
        logger.info(
            f"Discovery job finished: {summary.processed} processed, "
            f"{summary.total_correlations} correlations ({summary.new_correlations} new), "
            f"{summary.validated} validated, {summary.invalidated} invalidated, "
            f"{summary.errors} errors in {summary.duration_seconds:.1f}s"
        )
        return summary
