"""
Tests for the holiday calendar and the seasonal weather model.
"""

from datetime import date

import pytest

from covercast.domain.context import DiningImpact
from covercast.providers.holidays import USHolidayCalendar, easter_sunday, last_weekday, nth_weekday
from covercast.providers.seasonal import SeasonalWeatherModel


class TestHolidayRules:
    @pytest.mark.parametrize("name,expected", [
        ("Super Bowl Sunday", date(2024, 2, 11)),
        ("Memorial Day", date(2024, 5, 27)),
        ("Mother's Day", date(2024, 5, 12)),
        ("Thanksgiving", date(2024, 11, 28)),
        ("Black Friday", date(2024, 11, 29)),
        ("Easter Sunday", date(2024, 3, 31)),
        ("Labor Day", date(2024, 9, 2)),
    ])
    def test_2024_dates(self, name, expected):
        assert USHolidayCalendar().by_name(2024)[name].date == expected

    def test_weekday_helpers(self):
        assert nth_weekday(2025, 2, 6, 2) == date(2025, 2, 9)
        assert last_weekday(2025, 5, 0) == date(2025, 5, 26)
        assert easter_sunday(2025) == date(2025, 4, 20)


class TestUSHolidayCalendar:
    def test_get_holiday(self):
        calendar = USHolidayCalendar()

        christmas = calendar.get_holiday(date(2023, 12, 25))

        assert christmas.name == "Christmas Day"
        assert christmas.dining_impact == DiningImpact.NEGATIVE
        assert calendar.get_holiday(date(2023, 12, 26)) is None

    def test_upcoming_holidays_cross_year(self):
        upcoming = USHolidayCalendar().get_upcoming_holidays(4, today=date(2024, 12, 20))

        assert [h.name for h in upcoming] == [
            "Christmas Eve", "Christmas Day", "New Year's Eve", "New Year's Day",
        ]
        assert upcoming[-1].date == date(2025, 1, 1)

    def test_holidays_in_range_is_inclusive(self):
        found = USHolidayCalendar().get_holidays_in_range(date(2024, 7, 4), date(2024, 9, 2))

        assert [h.name for h in found] == ["Independence Day", "Labor Day"]


class TestSeasonalWeatherModel:
    SACRAMENTO_LAT = 38.58

    def test_estimates_are_flagged(self):
        snapshot = SeasonalWeatherModel().estimate(date(2024, 4, 10), self.SACRAMENTO_LAT)

        assert snapshot.is_estimated
        assert snapshot.source == "seasonal_model"

    def test_deterministic(self):
        model = SeasonalWeatherModel()
        day = date(2024, 10, 3)

        assert model.estimate(day, self.SACRAMENTO_LAT) == model.estimate(day, self.SACRAMENTO_LAT)

    def test_calibrated_band_winter_and_summer(self):
        model = SeasonalWeatherModel()

        winter = model.estimate(date(2024, 1, 15), self.SACRAMENTO_LAT)
        summer = model.estimate(date(2024, 7, 15), self.SACRAMENTO_LAT)

        assert winter.temperature == pytest.approx(35.0, abs=0.2)
        assert winter.is_raining
        assert summer.is_clear
        assert summer.temperature >= 75

    def test_latitude_selects_profile(self):
        model = SeasonalWeatherModel()

        assert model.profile_for(self.SACRAMENTO_LAT).calibrated
        assert model.profile_for(10).name == "tropical"
        assert model.profile_for(61).name == "subpolar"
        assert not model.profile_for(45).calibrated

    def test_southern_hemisphere_inverts_seasons(self):
        model = SeasonalWeatherModel()
        day = date(2024, 1, 15)

        north = model.estimate(day, 38)
        south = model.estimate(day, -38)

        assert south.temperature > north.temperature
        assert south.is_clear
