"""
Period resolution: turns a (year, month?, week?) selector into a date range.

Weeks are fixed slices of a month rather than ISO weeks:
week 1 = days 1-7, week 2 = 8-14, week 3 = 15-21, week 4 = 22-28 and
week 5 = day 29 to the end of the month (only when the month has one).
"""
import calendar
from datetime import date
from typing import List, Optional, Union

from analytics.exceptions import InvalidWeek
from analytics.models import Granularity, Period
from analytics.validators import MONTH_NAMES, validate_year, validate_month, validate_week

DAYS_PER_WEEK = 7

# Minimum month length for each week to exist
WEEK_MIN_DAYS = {1: 1, 2: 8, 3: 15, 4: 22, 5: 29}


def days_in_month(year: int, month: int) -> int:
    """Last day of the month, leap years included."""
    return calendar.monthrange(year, month)[1]


def week_start_day(week: int) -> int:
    return (week - 1) * DAYS_PER_WEEK + 1


def available_weeks(year: Union[int, str], month: str) -> List[int]:
    """
    Week numbers that exist in the given month.

    Computed purely from the calendar length of the month, regardless of
    whether any invoices fall into those weeks.
    """
    year_num = validate_year(year)
    month_num = validate_month(month)
    last_day = days_in_month(year_num, month_num)
    return [week for week, min_days in WEEK_MIN_DAYS.items() if last_day >= min_days]


def resolve_period(
    year: Union[int, str, None],
    month: Optional[str] = None,
    week: Union[int, str, None] = None,
) -> Period:
    """
    Resolve a report selector to an inclusive date range.

    Args:
        year: Calendar year (required)
        month: Canonical month name, e.g. "March"
        week: Week of month, 1-5 (requires month)

    Returns:
        Period with start/end dates and granularity

    Raises:
        InvalidPeriod: Year missing or non-numeric
        InvalidMonth: Month is not a canonical month name
        InvalidWeek: Week outside 1-5, or week 5 in a month shorter than 29 days
    """
    year_num = validate_year(year)

    if month is None or month == "":
        if week not in (None, ""):
            raise InvalidWeek("week", "Week requires a month", week)
        return Period(date(year_num, 1, 1), date(year_num, 12, 31), Granularity.YEAR)

    month_num = validate_month(month)
    last_day = days_in_month(year_num, month_num)

    if week is None or week == "":
        return Period(
            date(year_num, month_num, 1),
            date(year_num, month_num, last_day),
            Granularity.MONTH,
        )

    week_num = validate_week(week)
    start_day = week_start_day(week_num)
    if start_day > last_day:
        raise InvalidWeek(
            "week",
            f"{MONTH_NAMES[month_num - 1]} {year_num} has no week {week_num}",
            week
        )

    end_day = min(start_day + DAYS_PER_WEEK - 1, last_day)
    return Period(
        date(year_num, month_num, start_day),
        date(year_num, month_num, end_day),
        Granularity.WEEK,
    )


def month_periods(year: int) -> List[Period]:
    """All twelve month periods of a year, January first."""
    return [resolve_period(year, name) for name in MONTH_NAMES]


def shift_month(month_start: date, delta: int) -> date:
    """First day of the month ``delta`` months away from ``month_start``."""
    index = month_start.year * 12 + (month_start.month - 1) + delta
    return date(index // 12, index % 12 + 1, 1)
