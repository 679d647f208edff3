"""
Tests for analytics.periods module.
"""
import pytest
from datetime import date

from analytics.exceptions import InvalidMonth, InvalidPeriod, InvalidWeek
from analytics.models import Granularity
from analytics.periods import (
    available_weeks,
    days_in_month,
    month_periods,
    resolve_period,
    shift_month,
)


class TestResolvePeriod:
    """Tests for resolve_period function."""

    def test_year_only(self):
        period = resolve_period(2024)
        assert period.start_date == date(2024, 1, 1)
        assert period.end_date == date(2024, 12, 31)
        assert period.granularity == Granularity.YEAR

    def test_month(self):
        period = resolve_period("2024", "March")
        assert period.start_date == date(2024, 3, 1)
        assert period.end_date == date(2024, 3, 31)
        assert period.granularity == Granularity.MONTH

    def test_leap_february(self):
        assert resolve_period(2024, "February").end_date == date(2024, 2, 29)

    def test_non_leap_february(self):
        assert resolve_period(2023, "February").end_date == date(2023, 2, 28)

    def test_first_week(self):
        period = resolve_period(2024, "January", 1)
        assert period.start_date == date(2024, 1, 1)
        assert period.end_date == date(2024, 1, 7)
        assert period.granularity == Granularity.WEEK

    def test_fourth_week_is_full(self):
        period = resolve_period(2024, "April", "4")
        assert (period.start_date, period.end_date) == (date(2024, 4, 22), date(2024, 4, 28))

    def test_fifth_week_truncated_to_month_end(self):
        """Week 5 of a 31-day month covers days 29-31 only."""
        period = resolve_period(2024, "March", 5)
        assert period.start_date == date(2024, 3, 29)
        assert period.end_date == date(2024, 3, 31)

    def test_fifth_week_of_leap_february(self):
        period = resolve_period(2024, "February", 5)
        assert period.start_date == period.end_date == date(2024, 2, 29)

    def test_fifth_week_of_short_february(self):
        with pytest.raises(InvalidWeek):
            resolve_period(2023, "February", 5)

    def test_missing_year(self):
        with pytest.raises(InvalidPeriod):
            resolve_period(None, "March")

    def test_bad_month(self):
        with pytest.raises(InvalidMonth):
            resolve_period(2024, "march")

    def test_week_out_of_range(self):
        with pytest.raises(InvalidWeek):
            resolve_period(2024, "March", 6)

    def test_week_without_month(self):
        with pytest.raises(InvalidWeek):
            resolve_period(2024, None, 2)

    def test_contains_is_inclusive(self):
        period = resolve_period(2024, "January", 1)
        assert period.contains(date(2024, 1, 1))
        assert period.contains(date(2024, 1, 7))
        assert not period.contains(date(2024, 1, 8))


class TestAvailableWeeks:
    """Tests for available_weeks function."""

    def test_31_day_month(self):
        assert available_weeks(2024, "January") == [1, 2, 3, 4, 5]

    def test_30_day_month(self):
        assert available_weeks(2024, "April") == [1, 2, 3, 4, 5]

    def test_non_leap_february(self):
        assert available_weeks(2023, "February") == [1, 2, 3, 4]

    def test_leap_february(self):
        assert available_weeks(2024, "February") == [1, 2, 3, 4, 5]

    def test_every_listed_week_resolves(self):
        for week in available_weeks(2023, "February"):
            resolve_period(2023, "February", week)

    def test_invalid_month(self):
        with pytest.raises(InvalidMonth):
            available_weeks(2024, "Feb")


class TestCalendarHelpers:
    """Tests for month helpers."""

    def test_days_in_month(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(2100, 2) == 28
        assert days_in_month(2000, 2) == 29

    def test_month_periods(self):
        periods = month_periods(2024)
        assert len(periods) == 12
        assert periods[0].start_date == date(2024, 1, 1)
        assert periods[-1].end_date == date(2024, 12, 31)

    def test_shift_month_across_years(self):
        assert shift_month(date(2024, 1, 1), -1) == date(2023, 12, 1)
        assert shift_month(date(2023, 11, 1), 3) == date(2024, 2, 1)
        assert shift_month(date(2024, 5, 1), 0) == date(2024, 5, 1)
