"""
Input validation for report parameters.

All validators raise ValidationError on invalid input, before anything is
fetched from the store.
"""

import re
from datetime import date, datetime
from typing import Optional, Tuple, Union

from analytics.exceptions import ValidationError
from analytics.models import MonthKey, MovementType

ALL = "ALL"

MIN_YEAR = 2000
MAX_YEAR = 2100
MAX_LIMIT = 1000
MAX_BRAND_LENGTH = 100
MAX_RANGE_DAYS = 731


def _is_all(value) -> bool:
    return isinstance(value, str) and value.strip().upper() == ALL


def validate_date_string(
    value: str,
    field: str = "date",
    format: str = "%Y-%m-%d"
) -> date:
    """
    Validate and parse a date string.

    Raises:
        ValidationError: If date is missing or not in the expected format
    """
    if not value:
        raise ValidationError(field, "Date is required", value)

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    try:
        return datetime.strptime(value.strip(), format).date()
    except ValueError:
        raise ValidationError(
            field,
            f"Invalid date format. Expected {format}",
            value
        )


def validate_date_range(
    start_date: str,
    end_date: str,
    max_days: int = MAX_RANGE_DAYS,
    prefix: str = ""
) -> Tuple[date, date]:
    """
    Validate an inclusive date range.

    Args:
        start_date: Start date string (YYYY-MM-DD)
        end_date: End date string (YYYY-MM-DD)
        max_days: Maximum allowed range in days
        prefix: Field name prefix, e.g. "period_a_" for comparison requests

    Returns:
        Tuple of (start_date, end_date) as date objects
    """
    start = validate_date_string(start_date, f"{prefix}start_date")
    end = validate_date_string(end_date, f"{prefix}end_date")

    if start > end:
        raise ValidationError(
            f"{prefix}date_range",
            "Start date must be before or equal to end date",
            f"{start_date} to {end_date}"
        )

    days_diff = (end - start).days
    if days_diff > max_days:
        raise ValidationError(
            f"{prefix}date_range",
            f"Date range cannot exceed {max_days} days",
            f"{days_diff} days"
        )

    return start, end


def validate_year(value, field: str = "year") -> int:
    """Parse a year given as int or numeric string."""
    if value is None or value == "":
        raise ValidationError(field, "Year is required")

    if isinstance(value, bool):
        raise ValidationError(field, "Must be an integer", value)

    if isinstance(value, str):
        if not value.strip().isdigit():
            raise ValidationError(field, "Must be a four-digit year", value)
        value = int(value.strip())

    if not isinstance(value, int):
        raise ValidationError(field, "Must be an integer", value)

    if not MIN_YEAR <= value <= MAX_YEAR:
        raise ValidationError(field, f"Must be between {MIN_YEAR} and {MAX_YEAR}", value)

    return value


def validate_month(
    value,
    field: str = "month",
    allow_all: bool = True
) -> Union[int, str]:
    """
    Parse a month given as name ("March", "mar") or number (3, "3").

    Returns:
        Month number 1..12, or "ALL" when allowed
    """
    if value is None or value == "":
        raise ValidationError(field, "Month is required")

    if _is_all(value):
        if allow_all:
            return ALL
        raise ValidationError(field, "A specific month is required", value)

    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    elif isinstance(value, str):
        return MonthKey.from_name(MIN_YEAR, value).month
    else:
        raise ValidationError(field, "Must be a month name or number", value)

    if not 1 <= number <= 12:
        raise ValidationError(field, "Must be between 1 and 12", value)
    return number


def require_concrete_month(year, month) -> MonthKey:
    """
    Month key for reports that compare a month with the month before it.

    "ALL" or a missing value is rejected because there is no previous month.
    """
    if year is None or year == "" or _is_all(year):
        raise ValidationError("year", "A specific year is required for this report", year)
    if month is None or month == "" or _is_all(month):
        raise ValidationError("month", "A specific month is required for this report", month)
    return MonthKey.from_number(validate_year(year), validate_month(month, allow_all=False))


def validate_brand_name(
    value: Optional[str],
    field: str = "brand",
) -> Optional[str]:
    """
    Validate a brand (line) name.

    Returns:
        Stripped brand name, or None for empty / "ALL"
    """
    if value is None or value == "":
        return None

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    value = value.strip()
    if not value or value.upper() == ALL:
        return None

    if len(value) > MAX_BRAND_LENGTH:
        raise ValidationError(
            field,
            f"Cannot exceed {MAX_BRAND_LENGTH} characters",
            f"{len(value)} characters"
        )

    if not re.match(r"^[\w\s\-\.\'&]+$", value, re.UNICODE):
        raise ValidationError(field, "Contains invalid characters", value)

    return value


def validate_limit(
    value: int,
    field: str = "limit",
    min_value: int = 1,
    max_value: int = MAX_LIMIT
) -> int:
    """Validate a limit/count parameter."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "Must be an integer", value)

    if value < min_value:
        raise ValidationError(field, f"Must be at least {min_value}", value)

    if value > max_value:
        raise ValidationError(field, f"Cannot exceed {max_value}", value)

    return value


def validate_page(value: int, field: str = "page") -> int:
    return validate_limit(value, field=field, min_value=1, max_value=1_000_000)


def validate_movement_type(value: Optional[str], field: str = "movement_type") -> Optional[MovementType]:
    """Optional movement filter; "ALL" or empty means no filter."""
    if value is None or value == "" or _is_all(value):
        return None
    try:
        return MovementType(value.strip().upper())
    except ValueError:
        raise ValidationError(
            field,
            f"Must be one of: {', '.join(m.value for m in MovementType)}",
            value
        )