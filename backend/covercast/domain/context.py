"""
Context value types produced by the weather, events, sports and holiday
providers. Provider responses are parsed into these models at the boundary.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ImpactLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


MAJOR_IMPACT_LEVELS = (ImpactLevel.HIGH, ImpactLevel.CRITICAL)


class WeatherCategory(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    SEVERE = "severe"


class EventCategory(str, Enum):
    SPORTS = "sports"
    CONCERT = "concert"
    FESTIVAL = "festival"
    CONFERENCE = "conference"
    OTHER = "other"


class WeatherSnapshot(BaseModel):
    """Weather for one observation, forecast slot or modelled day."""
    
    model_config = ConfigDict(frozen=True)
    
    timestamp: datetime
    temperature: float
    feels_like: Optional[float] = None
    condition: str = Field(..., description="Lower-case main condition, e.g. 'clear', 'rain'")
    description: str = ""
    humidity: Optional[float] = None
    precipitation: float = 0.0
    wind_speed: Optional[float] = None
    is_raining: bool = False
    is_snowing: bool = False
    is_clear: bool = False
    is_extreme: bool = False
    category: WeatherCategory = WeatherCategory.GOOD
    source: str = Field(default="observed", description="observed, forecast or seasonal_model")
    is_estimated: bool = False
    
    @classmethod
    def from_conditions(
        cls,
        timestamp: datetime,
        temperature: float,
        condition: str,
        **kwargs,
    ) -> "WeatherSnapshot":
        """Build a snapshot, deriving the rain/extreme flags and the category."""
        condition = condition.lower()
        is_raining = "rain" in condition or "drizzle" in condition
        is_snowing = "snow" in condition
        is_clear = condition == "clear"
        is_extreme = temperature < 32 or temperature > 95 or "thunderstorm" in condition
        
        if is_extreme:
            category = WeatherCategory.SEVERE
        elif is_raining or is_snowing:
            category = WeatherCategory.POOR
        elif condition == "clouds":
            category = WeatherCategory.FAIR
        elif is_clear and 65 <= temperature <= 85:
            category = WeatherCategory.EXCELLENT
        else:
            category = WeatherCategory.GOOD
        
        return cls(
            timestamp=timestamp,
            temperature=temperature,
            condition=condition,
            is_raining=is_raining,
            is_snowing=is_snowing,
            is_clear=is_clear,
            is_extreme=is_extreme,
            category=category,
            **kwargs,
        )
    
    @property
    def is_perfect(self) -> bool:
        """Clear and 65-85°F."""
        return self.is_clear and 65 <= self.temperature <= 85
    
    @property
    def is_poor(self) -> bool:
        """Rain, or below 40°F, or above 95°F."""
        return self.is_raining or self.temperature < 40 or self.temperature > 95
    
    @property
    def bucket(self) -> str:
        """Menu-affinity bucket: rainy wins over hot, hot over cold."""
        if self.is_raining:
            return "rainy"
        if self.temperature >= 80:
            return "hot"
        if self.temperature < 50:
            return "cold"
        return "normal"


class LocalEvent(BaseModel):
    """A ticketed event near the restaurant."""
    
    model_config = ConfigDict(frozen=True)
    
    id: str
    name: str
    category: EventCategory = EventCategory.OTHER
    start: datetime
    end: Optional[datetime] = None
    venue: str = "Unknown"
    expected_attendance: int = 0
    distance_miles: float = 0.0
    impact_level: ImpactLevel = ImpactLevel.LOW
    
    @property
    def is_major(self) -> bool:
        return self.impact_level in MAJOR_IMPACT_LEVELS


class SportsGame(BaseModel):
    """A professional game near the restaurant."""
    
    model_config = ConfigDict(frozen=True)
    
    id: str
    league: str
    home_team: str
    away_team: str = ""
    game_date: datetime
    venue: str = ""
    distance_miles: float = 0.0
    expected_attendance: int = 0
    is_home_game: bool = False
    is_rivalry: bool = False
    status: str = "scheduled"
    impact_level: ImpactLevel = ImpactLevel.LOW
    
    @property
    def is_major(self) -> bool:
        return self.impact_level in MAJOR_IMPACT_LEVELS


class DiningImpact(str, Enum):
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    POSITIVE = "positive"
    VERY_POSITIVE = "very_positive"


class Holiday(BaseModel):
    """A calendar day with a known effect on dining out."""

    model_config = ConfigDict(frozen=True)

    name: str
    date: date
    type: str = "federal"
    impact_level: ImpactLevel = ImpactLevel.MEDIUM
    dining_impact: DiningImpact = DiningImpact.NEUTRAL
    typical_behavior: str = ""


class ContextSnapshot(BaseModel):
    """Everything the providers know about one restaurant-local day."""
    
    model_config = ConfigDict(frozen=True)
    
    date: date
    weather: Optional[WeatherSnapshot] = None
    events: Tuple[LocalEvent, ...] = ()
    games: Tuple[SportsGame, ...] = ()
    holiday: Optional[Holiday] = None
    
    @property
    def temperature(self) -> Optional[float]:
        return self.weather.temperature if self.weather else None
    
    @property
    def is_raining(self) -> bool:
        return bool(self.weather and self.weather.is_raining)
    
    @property
    def major_events(self) -> Tuple[LocalEvent, ...]:
        return tuple(e for e in self.events if e.is_major)
    
    @property
    def major_games(self) -> Tuple[SportsGame, ...]:
        return tuple(g for g in self.games if g.is_major)
    
    @property
    def has_major_event(self) -> bool:
        return bool(self.major_events)
    
    @property
    def has_major_game(self) -> bool:
        return bool(self.major_games)
    
    @property
    def is_weekend(self) -> bool:
        return self.date.weekday() >= 5
