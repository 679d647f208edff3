"""
Input validation functions for report and forecast parameters.

All validators raise ValidationError (or one of its period subclasses)
on invalid input. Values arrive as path/query strings, so numeric
validators accept both ``int`` and digit strings.
"""

from typing import Optional, Sequence, Union

from analytics.exceptions import ValidationError, InvalidPeriod, InvalidMonth, InvalidWeek


MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

MIN_YEAR = 1
MAX_YEAR = 9999
MIN_WEEK = 1
MAX_WEEK = 5


def _parse_int(value: Union[int, str, None]) -> Optional[int]:
    """Parse an int or a string of digits; anything else yields None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    return None


def validate_year(value: Union[int, str, None], field: str = "year") -> int:
    """
    Validate a calendar year.

    Args:
        value: Year as int or numeric string
        field: Field name for error messages

    Returns:
        Year as int

    Raises:
        InvalidPeriod: If year is missing, non-numeric or out of range
    """
    if value is None or value == "":
        raise InvalidPeriod(field, "Year is required")

    year = _parse_int(value)
    if year is None:
        raise InvalidPeriod(field, "Year must be numeric", value)

    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidPeriod(field, f"Year must be between {MIN_YEAR} and {MAX_YEAR}", value)

    return year


def validate_month(value: Optional[str], field: str = "month") -> int:
    """
    Validate a month name (case-sensitive, e.g. "March").

    Returns:
        Month number 1-12

    Raises:
        InvalidMonth: If value is not one of the twelve canonical names
    """
    if value is None or value == "":
        raise InvalidMonth(field, "Month is required")

    if not isinstance(value, str) or value not in MONTH_NAMES:
        raise InvalidMonth(field, f"Invalid month: {value}", value)

    return MONTH_NAMES.index(value) + 1


def validate_week(value: Union[int, str, None], field: str = "week") -> int:
    """
    Validate a week-of-month number.

    Raises:
        InvalidWeek: If value is not an integer between 1 and 5
    """
    if value is None or value == "":
        raise InvalidWeek(field, "Week is required")

    week = _parse_int(value)
    if week is None or not MIN_WEEK <= week <= MAX_WEEK:
        raise InvalidWeek(field, f"Week must be between {MIN_WEEK} and {MAX_WEEK}", value)

    return week


def validate_forecast_period(
    value: Union[int, str, None],
    allowed: Sequence[int] = (1, 3, 6),
    field: str = "period",
) -> int:
    """
    Validate the number of months to forecast.

    Raises:
        ValidationError: If value is not one of the allowed month counts
    """
    period = _parse_int(value)
    if period is None:
        raise ValidationError(field, "Forecast period must be an integer", value)

    if period not in allowed:
        raise ValidationError(
            field,
            f"Must be one of {', '.join(str(p) for p in allowed)}",
            value
        )

    return period


def validate_historical_months(
    value: Union[int, str, None],
    min_value: int = 1,
    max_value: int = 60,
    field: str = "historicalMonths",
) -> int:
    """
    Validate the length of the history window in months.

    Raises:
        ValidationError: If value is not an integer in range
    """
    months = _parse_int(value)
    if months is None:
        raise ValidationError(field, "Must be an integer", value)

    if months < min_value:
        raise ValidationError(field, f"Must be at least {min_value}", value)

    if months > max_value:
        raise ValidationError(field, f"Cannot exceed {max_value}", value)

    return months
