"""
Ticketmaster Discovery API events provider and event impact scoring.
"""

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

import pytz
import requests
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from covercast.config import Settings, settings as default_settings
from covercast.domain.context import EventCategory, ImpactLevel, LocalEvent
from covercast.providers.base import EventsProvider
from covercast.providers.http import ProviderClient
from covercast.utils.cache import Cache, location_key
from covercast.utils.datetime import local_date
from covercast.utils.errors import EventsProviderError
from covercast.utils.geo import haversine_miles
from covercast.utils.rate_limit import RateLimiter

MAJOR_EVENT_RADIUS_MILES = 10
MAJOR_EVENT_MIN_ATTENDANCE = 1000

CATEGORY_POINTS = {
    EventCategory.SPORTS: 20,
    EventCategory.FESTIVAL: 15,
    EventCategory.CONCERT: 15,
    EventCategory.CONFERENCE: 10,
    EventCategory.OTHER: 5,
}

DEFAULT_ATTENDANCE = {
    EventCategory.SPORTS: 5000,
    EventCategory.CONCERT: 2000,
    EventCategory.FESTIVAL: 3000,
    EventCategory.CONFERENCE: 500,
    EventCategory.OTHER: 200,
}


def event_impact_level(distance_miles: float, attendance: int, category: EventCategory) -> ImpactLevel:
    """Score distance (0-40), attendance (0-40) and category (0-20) into an impact level."""
    score = 0
    if distance_miles < 0.5:
        score += 40
    elif distance_miles < 1:
        score += 30
    elif distance_miles < 2:
        score += 20
    elif distance_miles < 5:
        score += 10
    
    if attendance > 10000:
        score += 40
    elif attendance > 5000:
        score += 30
    elif attendance > 1000:
        score += 20
    elif attendance > 500:
        score += 10
    
    score += CATEGORY_POINTS.get(category, 0)
    
    if score >= 75:
        return ImpactLevel.CRITICAL
    if score >= 50:
        return ImpactLevel.HIGH
    if score >= 25:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def categorize_event(classification: Optional[Dict[str, Any]]) -> EventCategory:
    classification = classification or {}
    segment = ((classification.get("segment") or {}).get("name") or "").lower()
    genre = ((classification.get("genre") or {}).get("name") or "").lower()
    
    if "sports" in segment:
        return EventCategory.SPORTS
    if "music" in segment or "concert" in genre:
        return EventCategory.CONCERT
    if "arts" in segment or "festival" in genre:
        return EventCategory.FESTIVAL
    if "miscellaneous" in segment:
        return EventCategory.CONFERENCE
    return EventCategory.OTHER


def estimate_attendance(venue: Dict[str, Any], category: EventCategory) -> int:
    """70% of venue capacity when known, otherwise a per-category default."""
    try:
        capacity = int(venue.get("capacity") or 0)
    except (TypeError, ValueError):
        capacity = 0
    if capacity > 0:
        return int(capacity * 0.7)
    return DEFAULT_ATTENDANCE[category]


def parse_event(raw: Dict[str, Any], lat: float, lon: float, tz: pytz.BaseTzInfo = pytz.UTC) -> LocalEvent:
    """Parse one Ticketmaster event; date-only starts are local midnight in ``tz``."""
    venue = ((raw.get("_embedded") or {}).get("venues") or [{}])[0]
    location = venue.get("location") or {}
    distance = haversine_miles(
        lat, lon,
        float(location.get("latitude") or 0),
        float(location.get("longitude") or 0),
    )
    category = categorize_event((raw.get("classifications") or [None])[0])
    attendance = estimate_attendance(venue, category)
    
    start_info = raw["dates"]["start"]
    if start_info.get("dateTime"):
        start = start_info["dateTime"]
    else:
        start = tz.localize(datetime.combine(date.fromisoformat(start_info["localDate"]), time.min))
    end_info = (raw["dates"].get("end") or {})
    
    return LocalEvent(
        id=str(raw["id"]),
        name=raw.get("name", ""),
        category=category,
        start=start,
        end=end_info.get("dateTime") or start,
        venue=venue.get("name") or "Unknown",
        expected_attendance=attendance,
        distance_miles=round(distance, 2),
        impact_level=event_impact_level(distance, attendance, category),
    )


class TicketmasterEventsProvider(EventsProvider):
    """Local events from the Ticketmaster Discovery API."""
    
    def __init__(
        self,
        config: Settings = default_settings,
        session: Optional[requests.Session] = None,
        cache: Optional[Cache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        backoff_multiplier: float = 0.5,
    ):
        self.config = config
        self.api_key = config.ticketmaster_api_key
        self.cache = cache or Cache(enabled=config.cache_enabled)
        self.client = ProviderClient(
            base_url=config.ticketmaster_base_url,
            rate_limiter=rate_limiter or RateLimiter(
                requests=config.ticketmaster_rate_limit_requests,
                period=config.ticketmaster_rate_limit_period,
                enabled=config.rate_limit_enabled,
            ),
            timeout=config.provider_timeout_seconds,
            max_retries=config.provider_max_retries,
            error_class=EventsProviderError,
            session=session,
            backoff_multiplier=backoff_multiplier,
        )
    
    def get_local_events(
        self,
        lat: float,
        lon: float,
        radius_miles: float = 5,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        tz: pytz.BaseTzInfo = pytz.UTC,
    ) -> List[LocalEvent]:
        params: Dict[str, Any] = {
            "apikey": self.api_key,
            "latlong": f"{lat},{lon}",
            "radius": radius_miles,
            "unit": "miles",
            "size": 50,
        }
        if start:
            params["startDateTime"] = _iso(start)
        if end:
            params["endDateTime"] = _iso(end)
        
        cache_key = location_key(
            "events", lat, lon, radius_miles, params.get("startDateTime"), params.get("endDateTime"), tz.zone
        )
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        
        data = self.client.get_json("events.json", params)
        raw_events = ((data or {}).get("_embedded") or {}).get("events") or []
        
        events = []
        for raw in raw_events:
            try:
                events.append(parse_event(raw, lat, lon, tz))
            except (KeyError, IndexError, TypeError, ValueError, PydanticValidationError) as e:
                logger.warning(f"Skipping malformed event {raw.get('id')}: {e}")
        
        self.cache.set(cache_key, events, ttl_seconds=self.config.events_cache_ttl)
        return events
    
    def get_major_events(
        self, lat: float, lon: float, day: date, tz: pytz.BaseTzInfo = pytz.UTC
    ) -> List[LocalEvent]:
        """Events on the local calendar ``day`` within 10 miles that draw a crowd or are sports/festivals."""
        start = tz.localize(datetime.combine(day, time.min))
        end = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
        events = self.get_local_events(lat, lon, MAJOR_EVENT_RADIUS_MILES, start, end, tz)
        return [
            e for e in events
            if local_date(e.start, tz) == day
            and (
                e.expected_attendance > MAJOR_EVENT_MIN_ATTENDANCE
                or e.category in (EventCategory.SPORTS, EventCategory.FESTIVAL)
            )
        ]


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
