"""
Pattern value types.

A Pattern is a scoped statistical relationship between an external factor
(weather, events, holidays, sports, or a combination) and a business outcome.
The ORM row lives in ``covercast.db.models.Correlation``; everything outside
the repository works with these immutable models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Scope(str, Enum):
    RESTAURANT = "restaurant"
    REGIONAL = "regional"
    GLOBAL = "global"


class FactorType(str, Enum):
    WEATHER = "weather"
    EVENT = "event"
    HOLIDAY = "holiday"
    SPORTS = "sports"
    MULTI_FACTOR = "multi_factor"


class CorrelationType(str, Enum):
    WEATHER_SALES = "weather_sales"
    WEATHER_ITEMS = "weather_items"
    EVENT_SALES = "event_sales"
    SPORTS_SALES = "sports_sales"
    HOLIDAY_SALES = "holiday_sales"
    MULTI_FACTOR = "multi_factor"


class Metric(str, Enum):
    REVENUE = "revenue"
    TRAFFIC = "traffic"
    AVG_TICKET = "avg_ticket"
    ITEM_SALES = "item_sales"


class Strength(str, Enum):
    VERY_STRONG = "very_strong"
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    VERY_WEAK = "very_weak"
    NONE = "none"


class Condition(str, Enum):
    """The specific relationship an external factor describes."""
    
    TEMPERATURE = "temperature"
    PRECIPITATION = "precipitation"
    WEATHER_QUALITY = "weather_quality"
    MENU_WEATHER = "menu_weather"
    LOCAL_EVENT = "local_event"
    SPORTS_GAME = "sports_game"
    HOLIDAY = "holiday"
    WEEKEND_PERFECT_EVENT = "weekend_perfect_event"
    RAINY_FRIDAY = "rainy_friday"
    COLD_MONDAY = "cold_monday"


class ExternalFactor(BaseModel):
    """Structured description of the condition a pattern is keyed on."""
    
    model_config = ConfigDict(frozen=True)
    
    type: FactorType
    condition: Condition
    operator: Optional[str] = Field(default=None, description="'above' or 'below' for thresholds")
    threshold: Optional[float] = None
    weather_condition: Optional[str] = Field(default=None, description="rain, excellent, hot, cold, ...")
    event_type: Optional[str] = None
    venue_name: Optional[str] = None
    expected_attendance: Optional[int] = None
    league: Optional[str] = None
    team_name: Optional[str] = None
    holiday_name: Optional[str] = None
    item_name: Optional[str] = None
    item_category: Optional[str] = None
    factors: Tuple[str, ...] = ()
    
    @property
    def pooling_key(self) -> str:
        """
        Identity used when pooling restaurant patterns into regional/global ones.
        
        Thresholds, venues and teams are local details and are left out; menu
        patterns keep their item so unrelated items never share a pool.
        """
        parts = [self.type.value, self.condition.value]
        if self.condition == Condition.MENU_WEATHER:
            parts += [self.weather_condition or "", self.item_category or "", self.item_name or ""]
        return "/".join(parts)


class BusinessOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)
    
    metric: Metric
    value: float
    change: float = Field(..., description="Percent change versus baseline")
    baseline: float


class PatternStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)
    
    correlation: float = Field(..., ge=-1, le=1)
    p_value: float = Field(..., ge=0, le=1)
    sample_size: int = Field(..., ge=1)
    confidence: float = Field(..., ge=0, le=100)
    r_squared: float = Field(..., ge=0, le=1)


class PatternNarrative(BaseModel):
    """Human-readable rendering of a pattern."""
    
    model_config = ConfigDict(frozen=True)
    
    description: str
    when_condition: str
    then_outcome: str
    strength: Strength
    actionable: bool = False
    recommendation: Optional[str] = None


class LearningStats(BaseModel):
    model_config = ConfigDict(frozen=True)
    
    first_discovered: datetime = Field(default_factory=datetime.utcnow)
    last_updated: datetime = Field(default_factory=datetime.utcnow)
    data_points: int = Field(default=0, ge=0)
    restaurants_contributing: int = Field(default=1, ge=0)
    times_validated: int = Field(default=0, ge=0)
    times_invalidated: int = Field(default=0, ge=0)
    accuracy: float = Field(default=100.0, ge=0, le=100)
    
    @property
    def total_validations(self) -> int:
        return self.times_validated + self.times_invalidated


class Pattern(BaseModel):
    """A discovered or pooled correlation."""
    
    model_config = ConfigDict(frozen=True)
    
    id: Optional[int] = None
    scope: Scope = Scope.RESTAURANT
    restaurant_id: Optional[int] = None
    region: Optional[str] = None
    cuisine_type: Optional[str] = None
    correlation_type: CorrelationType
    external_factor: ExternalFactor
    business_outcome: BusinessOutcome
    statistics: PatternStatistics
    narrative: PatternNarrative
    learning: LearningStats = Field(default_factory=LearningStats)
    is_active: bool = True
    confidence: float = Field(..., ge=0, le=100)
    last_applied: Optional[datetime] = None
    times_applied: int = Field(default=0, ge=0)
    version: int = Field(default=1, ge=1)
    previous_version_id: Optional[int] = None
    
    @model_validator(mode="after")
    def check_scope(self) -> "Pattern":
        if self.scope == Scope.RESTAURANT and self.restaurant_id is None:
            raise ValueError("restaurant-scoped patterns need a restaurant_id")
        if self.scope != Scope.RESTAURANT and self.restaurant_id is not None:
            raise ValueError(f"{self.scope.value} patterns cannot carry a restaurant_id")
        return self
    
    @property
    def factor_type(self) -> FactorType:
        return self.external_factor.type
    
    @property
    def metric(self) -> Metric:
        return self.business_outcome.metric
    
    @property
    def dedupe_key(self) -> Tuple[str, str]:
        """(type, externalFactor) identity used when merging scope levels."""
        return (self.correlation_type.value, self.external_factor.model_dump_json())
    
    @property
    def reliability_score(self) -> float:
        """Blend of validation accuracy, evidence volume and correlation strength."""
        volume = min(self.learning.data_points / 1000, 1)
        return (
            self.learning.accuracy * 0.4
            + volume * 30
            + abs(self.statistics.correlation) * 30
        )
