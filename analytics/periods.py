"""
Period arithmetic: windows, elapsed days, daily averages, month-over-month.
"""
from datetime import date
from typing import Dict, Mapping, Optional, Union

from analytics.models import MonthKey, PeriodWindow
from analytics.validators import (
    ALL,
    validate_date_range,
    validate_month,
    validate_year,
)


def resolve_window(
    year=None,
    month=None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    prefix: str = "",
) -> PeriodWindow:
    """
    Build a window from request parameters.

    An explicit start/end range wins; otherwise year + month is used and
    month "ALL" means the whole year. Nothing is defaulted: a missing year
    or month is a validation error, so the whole year must be asked for.
    """
    if start_date or end_date:
        start, end = validate_date_range(start_date, end_date, prefix=prefix)
        return PeriodWindow(start, end)

    year_value = validate_year(year, field=f"{prefix}year")
    month_value = validate_month(month, field=f"{prefix}month")
    if month_value == ALL:
        return PeriodWindow.for_year(year_value)
    return PeriodWindow.for_month(MonthKey.from_number(year_value, month_value))


def is_current_month(month_key: MonthKey, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return month_key.year == today.year and month_key.month == today.month


def elapsed_days(
    month_key: MonthKey,
    latest_data_date: Optional[date] = None,
    today: Optional[date] = None,
) -> int:
    """
    Days of the month covered by data.

    For the running month this is the day of the latest row actually
    present (data can lag behind today); past months count in full.
    """
    if not is_current_month(month_key, today):
        return month_key.days
    if latest_data_date is None or not month_key.contains(latest_data_date):
        return month_key.days
    return latest_data_date.day


def daily_average(total: float, days: int, month_key: Optional[MonthKey] = None) -> float:
    """Total per elapsed day; zero elapsed days fall back to the month's length."""
    if days <= 0:
        days = month_key.days if month_key else 0
    if days <= 0:
        return 0.0
    return total / days


def calc_mom(current: float, previous: float) -> float:
    """
    Month-over-month change in percent.

    previous == 0 gives 100 when current is positive, else 0.
    """
    if not previous:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def mom_deltas(
    current: Mapping[str, Union[int, float]],
    previous: Mapping[str, Union[int, float]],
) -> Dict[str, float]:
    """calc_mom for every numeric key present in current."""
    return {
        key: calc_mom(value, previous.get(key, 0) or 0)
        for key, value in current.items()
        if isinstance(value, (int, float)) and not isinstance(value, bool)
    }
