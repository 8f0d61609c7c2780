"""Forecast output types. Produced per request and never persisted."""

from datetime import date
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from covercast.domain.context import ContextSnapshot, Holiday, LocalEvent, SportsGame, WeatherSnapshot
from covercast.domain.patterns import Metric


class PredictionFactor(BaseModel):
    model_config = ConfigDict(frozen=True)
    
    type: str
    description: str
    impact: float = Field(..., description="Percent change attributed to this factor")
    confidence: float = Field(default=0.0, ge=0, le=100)
    source_pattern: Optional[int] = None
    recommendation: Optional[str] = None


class Prediction(BaseModel):
    model_config = ConfigDict(frozen=True)
    
    metric: Metric
    predicted_value: float
    confidence: float = Field(..., ge=0, le=100)
    baseline: float
    change: float
    subject: Optional[str] = Field(default=None, description="Menu item for item_sales predictions")
    factors: List[PredictionFactor] = Field(default_factory=list)


class PredictionInput(BaseModel):
    """Forecast context for one restaurant-local day."""

    model_config = ConfigDict(frozen=True)

    restaurant_id: int
    date: date
    weather: Optional[WeatherSnapshot] = None
    events: Tuple[LocalEvent, ...] = ()
    games: Tuple[SportsGame, ...] = ()
    holiday: Optional[Holiday] = None

    def snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            date=self.date,
            weather=self.weather,
            events=self.events,
            games=self.games,
            holiday=self.holiday,
        )


class DayForecast(BaseModel):
    model_config = ConfigDict(frozen=True)
    
    date: date
    day_of_week: str
    predicted_revenue: float
    revenue_low: float
    revenue_high: float
    baseline_revenue: float
    predicted_traffic: int
    confidence: float
    peak_hours: List[str] = Field(default_factory=list)
    factors: List[PredictionFactor] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    
    @property
    def change(self) -> float:
        if not self.baseline_revenue:
            return 0.0
        return (self.predicted_revenue - self.baseline_revenue) / self.baseline_revenue * 100


class WeekForecast(BaseModel):
    model_config = ConfigDict(frozen=True)
    
    restaurant_id: int
    start_date: date
    days: List[DayForecast] = Field(default_factory=list)
    total_revenue: float = 0.0
    average_confidence: float = 0.0
    insights: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
