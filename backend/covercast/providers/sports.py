"""
Professional sports schedule provider backed by TheSportsDB.

TheSportsDB does not return venue coordinates, so home venues come from a
team registry. Games whose home team is not registered are skipped.
"""

from datetime import date, datetime, time
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

import pytz
import requests
from loguru import logger
from pydantic import BaseModel, ConfigDict

from covercast.config import Settings, settings as default_settings
from covercast.domain.context import ImpactLevel, SportsGame
from covercast.providers.base import SportsProvider
from covercast.providers.http import ProviderClient
from covercast.utils.errors import SportsProviderError
from covercast.utils.datetime import local_date, utc_dates_spanning
from covercast.utils.geo import haversine_miles
from covercast.utils.rate_limit import RateLimiter

LEAGUE_IDS = {"NFL": "4391", "NBA": "4387", "MLB": "4424", "NHL": "4380"}

LEAGUE_AVERAGE_ATTENDANCE = {"NFL": 67000, "MLB": 28000, "NBA": 17500, "NHL": 17000, "MLS": 21000}
LEAGUE_POINTS = {"NFL": 15, "NBA": 12, "MLB": 10, "NHL": 8, "MLS": 5}

HOME_GAME_RADIUS_MILES = 30


class TeamVenue(BaseModel):
    model_config = ConfigDict(frozen=True)
    
    latitude: float
    longitude: float
    city: str


DEFAULT_TEAM_VENUES: Dict[str, TeamVenue] = {
    # NFL
    "San Francisco 49ers": TeamVenue(latitude=37.4032, longitude=-121.9696, city="Santa Clara"),
    "Los Angeles Rams": TeamVenue(latitude=34.0141, longitude=-118.2879, city="Los Angeles"),
    "Los Angeles Chargers": TeamVenue(latitude=34.0141, longitude=-118.2879, city="Los Angeles"),
    "Las Vegas Raiders": TeamVenue(latitude=36.0909, longitude=-115.1833, city="Las Vegas"),
    "Seattle Seahawks": TeamVenue(latitude=47.5952, longitude=-122.3316, city="Seattle"),
    # NBA
    "Sacramento Kings": TeamVenue(latitude=38.5802, longitude=-121.4997, city="Sacramento"),
    "Golden State Warriors": TeamVenue(latitude=37.7680, longitude=-122.3877, city="San Francisco"),
    "Los Angeles Lakers": TeamVenue(latitude=34.0430, longitude=-118.2673, city="Los Angeles"),
    "Los Angeles Clippers": TeamVenue(latitude=34.0430, longitude=-118.2673, city="Los Angeles"),
    # MLB
    "San Francisco Giants": TeamVenue(latitude=37.7786, longitude=-122.3893, city="San Francisco"),
    "Oakland Athletics": TeamVenue(latitude=37.7516, longitude=-122.2005, city="Oakland"),
    "Los Angeles Dodgers": TeamVenue(latitude=34.0739, longitude=-118.2400, city="Los Angeles"),
    "Los Angeles Angels": TeamVenue(latitude=33.8003, longitude=-117.8827, city="Anaheim"),
    "San Diego Padres": TeamVenue(latitude=32.7073, longitude=-117.1566, city="San Diego"),
    # NHL
    "San Jose Sharks": TeamVenue(latitude=37.3327, longitude=-121.9010, city="San Jose"),
    "Anaheim Ducks": TeamVenue(latitude=33.8075, longitude=-117.8765, city="Anaheim"),
    "Los Angeles Kings": TeamVenue(latitude=34.0430, longitude=-118.2673, city="Los Angeles"),
}

DEFAULT_RIVALRIES: FrozenSet[FrozenSet[str]] = frozenset(
    frozenset(pair) for pair in [
        ("San Francisco 49ers", "Seattle Seahawks"),
        ("San Francisco 49ers", "Los Angeles Rams"),
        ("Las Vegas Raiders", "Kansas City Chiefs"),
        ("Los Angeles Lakers", "Los Angeles Clippers"),
        ("Golden State Warriors", "Los Angeles Lakers"),
        ("Sacramento Kings", "Golden State Warriors"),
        ("San Francisco Giants", "Los Angeles Dodgers"),
        ("Oakland Athletics", "San Francisco Giants"),
        ("San Jose Sharks", "Los Angeles Kings"),
        ("Anaheim Ducks", "Los Angeles Kings"),
    ]
)


def sports_impact_level(
    distance_miles: float,
    attendance: int,
    is_home_game: bool,
    is_rivalry: bool,
    league: str,
) -> ImpactLevel:
    """Score distance, home game, attendance, rivalry and league into an impact level."""
    score = 0
    if distance_miles < 1:
        score += 30
    elif distance_miles < 5:
        score += 25
    elif distance_miles < 10:
        score += 15
    elif distance_miles < 30:
        score += 8
    
    if is_home_game:
        score += 20
    
    if attendance > 50000:
        score += 20
    elif attendance > 30000:
        score += 15
    elif attendance > 15000:
        score += 10
    else:
        score += 5
    
    if is_rivalry:
        score += 15
    
    score += LEAGUE_POINTS.get(league, 5)
    
    if score >= 70:
        return ImpactLevel.CRITICAL
    if score >= 50:
        return ImpactLevel.HIGH
    if score >= 30:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def parse_game_status(status: Optional[str]) -> str:
    if not status:
        return "scheduled"
    lower = status.lower()
    if "postponed" in lower or "cancelled" in lower:
        return "postponed"
    if "final" in lower or "ft" in lower:
        return "completed"
    if "live" in lower or "progress" in lower:
        return "in_progress"
    return "scheduled"


def estimate_game_attendance(league: str, reported: Any) -> int:
    try:
        value = int(reported)
        if value > 0:
            return value
    except (TypeError, ValueError):
        pass
    return LEAGUE_AVERAGE_ATTENDANCE.get(league, 20000)


class SportsDbProvider(SportsProvider):
    """Daily league schedules from TheSportsDB."""
    
    def __init__(
        self,
        config: Settings = default_settings,
        session: Optional[requests.Session] = None,
        team_venues: Optional[Mapping[str, TeamVenue]] = None,
        rivalries: Optional[FrozenSet[FrozenSet[str]]] = None,
        leagues: Optional[Mapping[str, str]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        backoff_multiplier: float = 0.5,
    ):
        self.team_venues = dict(team_venues if team_venues is not None else DEFAULT_TEAM_VENUES)
        self.rivalries = rivalries if rivalries is not None else DEFAULT_RIVALRIES
        self.leagues = dict(leagues or LEAGUE_IDS)
        self.client = ProviderClient(
            base_url=config.sportsdb_base_url,
            rate_limiter=rate_limiter or RateLimiter(
                requests=config.sportsdb_rate_limit_requests,
                period=config.sportsdb_rate_limit_period,
                enabled=config.rate_limit_enabled,
            ),
            timeout=config.provider_timeout_seconds,
            max_retries=config.provider_max_retries,
            error_class=SportsProviderError,
            session=session,
            backoff_multiplier=backoff_multiplier,
        )
    
    def is_rivalry(self, home: str, away: str) -> bool:
        return frozenset((home, away)) in self.rivalries
    
    def get_games_on_date(
        self,
        day: date,
        lat: float,
        lon: float,
        radius_miles: float = 50,
        tz: pytz.BaseTzInfo = pytz.UTC,
    ) -> List[SportsGame]:
        """
        Games whose start falls on the local calendar ``day``.

        TheSportsDB files games under their UTC date, so every UTC date the
        local day overlaps is queried and games are kept by local start date.
        """
        games: List[SportsGame] = []
        failures = 0
        for league, league_id in self.leagues.items():
            try:
                games.extend(self._league_games(league, league_id, day, lat, lon, radius_miles, tz))
            except SportsProviderError as e:
                failures += 1
                logger.warning(f"{league} schedule unavailable for {day}: {e.message}")
        
        if failures and failures == len(self.leagues):
            raise SportsProviderError(f"No league schedule could be fetched for {day}")
        
        return sorted(games, key=lambda g: g.distance_miles)
    
    def _league_games(
        self,
        league: str,
        league_id: str,
        day: date,
        lat: float,
        lon: float,
        radius_miles: float,
        tz: pytz.BaseTzInfo,
    ) -> List[SportsGame]:
        games: Dict[str, SportsGame] = {}
        for schedule_day in utc_dates_spanning(day, tz):
            data = self.client.get_json("eventsday.php", {"d": schedule_day.isoformat(), "l": league_id})
            for event in (data or {}).get("events") or []:
                game = self._parse_game(event, league, schedule_day, lat, lon, tz)
                if game is None or game.distance_miles > radius_miles:
                    continue
                if local_date(game.game_date, tz) == day:
                    games.setdefault(game.id, game)
        return list(games.values())
    
    def _parse_game(
        self,
        event: Dict[str, Any],
        league: str,
        schedule_day: date,
        lat: float,
        lon: float,
        tz: pytz.BaseTzInfo,
    ) -> Optional[SportsGame]:
        home = event.get("strHomeTeam") or ""
        venue = self.team_venues.get(home)
        if venue is None:
            return None
        
        away = event.get("strAwayTeam") or ""
        distance = haversine_miles(lat, lon, venue.latitude, venue.longitude)
        is_home_game = distance < HOME_GAME_RADIUS_MILES
        rivalry = self.is_rivalry(home, away)
        attendance = estimate_game_attendance(league, event.get("intSpectators"))
        
        game_date = _parse_timestamp(event.get("strTimestamp"))
        if game_date is None:
            # No start time: trust the local date when given, else the schedule date
            local_day = _parse_day(event.get("dateEventLocal")) or schedule_day
            game_date = tz.localize(datetime.combine(local_day, time.min))
        
        return SportsGame(
            id=str(event.get("idEvent") or f"{league}-{home}-{game_date.date()}"),
            league=league,
            home_team=home,
            away_team=away,
            game_date=game_date,
            venue=event.get("strVenue") or venue.city,
            distance_miles=round(distance, 2),
            expected_attendance=attendance,
            is_home_game=is_home_game,
            is_rivalry=rivalry,
            status=parse_game_status(event.get("strStatus")),
            impact_level=sports_impact_level(distance, attendance, is_home_game, rivalry, league),
        )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """TheSportsDB ``strTimestamp``; naive values are UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = pytz.UTC.localize(parsed)
    return parsed


def _parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
