"""Ephemeral per-run aggregates: daily sales roll-ups and prediction baselines."""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List


@dataclass
class DailyAggregate:
    """One restaurant-local day of sales."""
    
    date: date
    revenue: float = 0.0
    transaction_count: int = 0
    # category -> item name -> quantity
    item_counts: Dict[str, Dict[str, float]] = field(default_factory=dict)
    
    @property
    def avg_ticket(self) -> float:
        return self.revenue / self.transaction_count if self.transaction_count else 0.0


@dataclass(frozen=True)
class DayOfWeekStats:
    avg_revenue: float
    avg_transactions: float


@dataclass(frozen=True)
class Baseline:
    """Trailing-window performance used as the reference for every prediction."""
    
    daily_avg_revenue: float
    daily_avg_transactions: float
    avg_ticket: float
    # 0=Monday ... 6=Sunday
    day_of_week: Dict[int, DayOfWeekStats]
    trend_percent: float
    peak_hours: List[str]
    window_days: int
    transaction_count: int
    
    @property
    def is_empty(self) -> bool:
        return self.transaction_count == 0
    
    def day_average(self, weekday: int) -> DayOfWeekStats:
        return self.day_of_week.get(
            weekday, DayOfWeekStats(avg_revenue=0.0, avg_transactions=0.0)
        )
