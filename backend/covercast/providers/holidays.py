"""
US holiday calendar with dining-out impact.

Dates are computed per year, so lookups work for any historical window.
"""

import calendar
from datetime import date, timedelta
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Tuple

from covercast.domain.context import DiningImpact, Holiday, ImpactLevel
from covercast.providers.base import HolidayProvider


def nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """The ``n``-th ``weekday`` (0=Monday) of a month."""
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def last_weekday(year: int, month: int, weekday: int) -> date:
    last = date(year, month, calendar.monthrange(year, month)[1])
    return last - timedelta(days=(last.weekday() - weekday) % 7)


def easter_sunday(year: int) -> date:
    """Gregorian Easter (anonymous computus)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def thanksgiving(year: int) -> date:
    return nth_weekday(year, 11, calendar.THURSDAY, 4)


# (name, type, impact level, dining impact, typical behaviour, date rule)
HolidayRule = Tuple[str, str, ImpactLevel, DiningImpact, str, Callable[[int], date]]

HOLIDAY_RULES: List[HolidayRule] = [
    ("New Year's Day", "federal", ImpactLevel.CRITICAL, DiningImpact.POSITIVE,
     "Brunch crowds, recovery meals, increased spending",
     lambda y: date(y, 1, 1)),
    ("Martin Luther King Jr. Day", "federal", ImpactLevel.MEDIUM, DiningImpact.NEUTRAL,
     "Day off for some, normal patterns for others",
     lambda y: nth_weekday(y, 1, calendar.MONDAY, 3)),
    ("Super Bowl Sunday", "sporting", ImpactLevel.CRITICAL, DiningImpact.NEGATIVE,
     "Dine-in drops, takeout and wings spike before kickoff",
     lambda y: nth_weekday(y, 2, calendar.SUNDAY, 2)),
    ("Valentine's Day", "commercial", ImpactLevel.CRITICAL, DiningImpact.VERY_POSITIVE,
     "Dinner rush, couples, reservations essential, high tickets",
     lambda y: date(y, 2, 14)),
    ("Presidents Day", "federal", ImpactLevel.MEDIUM, DiningImpact.POSITIVE,
     "Family dining, day trips increase traffic",
     lambda y: nth_weekday(y, 2, calendar.MONDAY, 3)),
    ("St. Patrick's Day", "cultural", ImpactLevel.HIGH, DiningImpact.VERY_POSITIVE,
     "Bar crowds, Irish food demand, late night traffic",
     lambda y: date(y, 3, 17)),
    ("Easter Sunday", "religious", ImpactLevel.CRITICAL, DiningImpact.VERY_POSITIVE,
     "Brunch crowds, family gatherings, upscale dining",
     easter_sunday),
    ("Mother's Day", "commercial", ImpactLevel.CRITICAL, DiningImpact.VERY_POSITIVE,
     "Busiest brunch day of the year, reservations required",
     lambda y: nth_weekday(y, 5, calendar.SUNDAY, 2)),
    ("Memorial Day", "federal", ImpactLevel.HIGH, DiningImpact.POSITIVE,
     "BBQ competition, outdoor dining, family gatherings",
     lambda y: last_weekday(y, 5, calendar.MONDAY)),
    ("Father's Day", "commercial", ImpactLevel.HIGH, DiningImpact.VERY_POSITIVE,
     "Brunch and dinner crowds, steakhouse demand",
     lambda y: nth_weekday(y, 6, calendar.SUNDAY, 3)),
    ("Juneteenth", "federal", ImpactLevel.MEDIUM, DiningImpact.NEUTRAL,
     "Cultural celebrations, some communities very active",
     lambda y: date(y, 6, 19)),
    ("Independence Day", "federal", ImpactLevel.CRITICAL, DiningImpact.NEGATIVE,
     "Home BBQs and fireworks, dine-in slows after early afternoon",
     lambda y: date(y, 7, 4)),
    ("Labor Day", "federal", ImpactLevel.HIGH, DiningImpact.POSITIVE,
     "End-of-summer outings, patio traffic",
     lambda y: nth_weekday(y, 9, calendar.MONDAY, 1)),
    ("Halloween", "cultural", ImpactLevel.MEDIUM, DiningImpact.NEUTRAL,
     "Early family dinners, late adult crowds",
     lambda y: date(y, 10, 31)),
    ("Veterans Day", "federal", ImpactLevel.MEDIUM, DiningImpact.NEUTRAL,
     "Veteran promotions, otherwise normal patterns",
     lambda y: date(y, 11, 11)),
    ("Thanksgiving", "federal", ImpactLevel.CRITICAL, DiningImpact.NEGATIVE,
     "Families eat at home, catering and pie orders peak",
     thanksgiving),
    ("Black Friday", "commercial", ImpactLevel.HIGH, DiningImpact.POSITIVE,
     "Shoppers near retail corridors, quick lunches",
     lambda y: thanksgiving(y) + timedelta(days=1)),
    ("Christmas Eve", "religious", ImpactLevel.HIGH, DiningImpact.NEGATIVE,
     "Early closes, family meals at home",
     lambda y: date(y, 12, 24)),
    ("Christmas Day", "federal", ImpactLevel.CRITICAL, DiningImpact.NEGATIVE,
     "Most restaurants quiet or closed",
     lambda y: date(y, 12, 25)),
    ("New Year's Eve", "cultural", ImpactLevel.CRITICAL, DiningImpact.VERY_POSITIVE,
     "Prix fixe dinners, late celebrations, high tickets",
     lambda y: date(y, 12, 31)),
]


@lru_cache(maxsize=64)
def holidays_for_year(year: int) -> Tuple[Holiday, ...]:
    holidays = [
        Holiday(
            name=name,
            date=rule(year),
            type=kind,
            impact_level=level,
            dining_impact=impact,
            typical_behavior=behaviour,
        )
        for name, kind, level, impact, behaviour, rule in HOLIDAY_RULES
    ]
    return tuple(sorted(holidays, key=lambda h: h.date))


class USHolidayCalendar(HolidayProvider):
    """Holiday lookups computed from fixed rules; no network access."""
    
    def get_holiday(self, day: date) -> Optional[Holiday]:
        for holiday in holidays_for_year(day.year):
            if holiday.date == day:
                return holiday
        return None
    
    def is_holiday(self, day: date) -> bool:
        return self.get_holiday(day) is not None
    
    def get_holidays_in_range(self, start: date, end: date) -> List[Holiday]:
        """Holidays with ``start <= date <= end``."""
        result: List[Holiday] = []
        for year in range(start.year, end.year + 1):
            result.extend(h for h in holidays_for_year(year) if start <= h.date <= end)
        return result
    
    def get_upcoming_holidays(self, count: int = 5, today: Optional[date] = None) -> List[Holiday]:
        today = today or date.today()
        upcoming: List[Holiday] = []
        year = today.year
        while len(upcoming) < count:
            upcoming.extend(h for h in holidays_for_year(year) if h.date >= today)
            year += 1
        return upcoming[:count]
    
    def by_name(self, year: int) -> Dict[str, Holiday]:
        return {h.name: h for h in holidays_for_year(year)}
