"""
Deterministic seasonal weather model.

Used when historical weather is unavailable. It is a closed-form function of
day-of-year and a climate profile selected by the restaurant's latitude band,
so results are ESTIMATES: every snapshot is marked ``source="seasonal_model"``
and ``is_estimated=True``.

Only the 33-42° band profile is calibrated (against Northern California
observations). The other bands carry coarse placeholder parameters and are
flagged ``calibrated=False``.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import FrozenSet, Optional, Sequence

import pytz

from covercast.domain.context import WeatherSnapshot


@dataclass(frozen=True)
class ClimateProfile:
    name: str
    min_abs_latitude: float
    max_abs_latitude: float
    base_temperature: float
    amplitude: float
    peak_day_of_year: int
    wet_months: FrozenSet[int]
    showery_months: FrozenSet[int]
    hot_months: FrozenSet[int]
    hot_floor: Optional[float] = None
    calibrated: bool = False
    
    def covers(self, latitude: float) -> bool:
        return self.min_abs_latitude <= abs(latitude) < self.max_abs_latitude


DEFAULT_PROFILES: Sequence[ClimateProfile] = (
    ClimateProfile(
        name="tropical",
        min_abs_latitude=0, max_abs_latitude=23.5,
        base_temperature=80, amplitude=5, peak_day_of_year=196,
        wet_months=frozenset({6, 7, 8, 9}), showery_months=frozenset({5, 10}),
        hot_months=frozenset(),
    ),
    ClimateProfile(
        name="subtropical",
        min_abs_latitude=23.5, max_abs_latitude=33,
        base_temperature=72, amplitude=14, peak_day_of_year=200,
        wet_months=frozenset({7, 8, 9}), showery_months=frozenset({5, 6}),
        hot_months=frozenset({6, 7, 8}), hot_floor=85,
    ),
    ClimateProfile(
        name="warm_temperate",
        min_abs_latitude=33, max_abs_latitude=42,
        base_temperature=65, amplitude=25, peak_day_of_year=196,
        wet_months=frozenset({12, 1, 2, 3}), showery_months=frozenset({4, 5, 6}),
        hot_months=frozenset({7, 8, 9}), hot_floor=75,
        calibrated=True,
    ),
    ClimateProfile(
        name="cool_temperate",
        min_abs_latitude=42, max_abs_latitude=50,
        base_temperature=50, amplitude=28, peak_day_of_year=200,
        wet_months=frozenset({11, 12, 1, 2, 3}), showery_months=frozenset({4, 5}),
        hot_months=frozenset({7, 8}),
    ),
    ClimateProfile(
        name="subpolar",
        min_abs_latitude=50, max_abs_latitude=90.01,
        base_temperature=38, amplitude=30, peak_day_of_year=200,
        wet_months=frozenset({10, 11, 12, 1, 2, 3}), showery_months=frozenset({4, 5, 6}),
        hot_months=frozenset(),
    ),
)


class SeasonalWeatherModel:
    """Estimate a day's weather from latitude band and calendar position."""
    
    def __init__(self, profiles: Sequence[ClimateProfile] = DEFAULT_PROFILES):
        self.profiles = tuple(profiles)
    
    def profile_for(self, latitude: float) -> ClimateProfile:
        for profile in self.profiles:
            if profile.covers(latitude):
                return profile
        return self.profiles[-1]
    
    def estimate(self, day: date, latitude: float) -> WeatherSnapshot:
        profile = self.profile_for(latitude)
        southern = latitude < 0
        
        peak = profile.peak_day_of_year
        month = day.month
        if southern:
            # Seasons invert below the equator.
            peak = (peak + 182) % 365
            month = (month + 5) % 12 + 1
        
        doy = day.timetuple().tm_yday
        seasonal = profile.base_temperature + profile.amplitude * math.cos(
            (doy - peak) / 365 * 2 * math.pi
        )
        variation = (day.day * 7 + (day.month - 1) * 3) % 20 - 10
        temperature = seasonal + variation
        
        if month in profile.wet_months:
            condition = "rain" if day.day % 3 == 0 else "clouds"
        elif month in profile.hot_months:
            condition = "clear"
            if profile.hot_floor is not None:
                temperature = max(temperature, profile.hot_floor)
        elif month in profile.showery_months:
            condition = "rain" if day.day % 4 == 0 else "clear"
        else:
            condition = "clear"
        
        return WeatherSnapshot.from_conditions(
            timestamp=datetime.combine(day, time(12), tzinfo=pytz.UTC),
            temperature=round(temperature, 1),
            condition=condition,
            description=f"seasonal estimate ({profile.name}{'' if profile.calibrated else ', uncalibrated'})",
            source="seasonal_model",
            is_estimated=True,
        )
