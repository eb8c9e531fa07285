"""Day counting for partial pay periods."""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal
from functools import lru_cache

from dateutil.easter import easter

from salarysync.calculators.types import ProrationMethod


@lru_cache(maxsize=32)
def dutch_public_holidays(year: int) -> frozenset[date]:
    """National public holidays that are not working days."""
    easter_sunday = easter(year)
    kings_day = date(year, 4, 27)
    if kings_day.weekday() == 6:
        kings_day = date(year, 4, 26)
    return frozenset(
        {
            date(year, 1, 1),
            easter_sunday - timedelta(days=2),  # Good Friday
            easter_sunday,
            easter_sunday + timedelta(days=1),
            kings_day,
            date(year, 5, 5),  # Liberation Day
            easter_sunday + timedelta(days=39),  # Ascension Day
            easter_sunday + timedelta(days=49),  # Whit Sunday
            easter_sunday + timedelta(days=50),
            date(year, 12, 25),
            date(year, 12, 26),
        }
    )


def is_working_day(day: date, working_days_per_week: int = 5) -> bool:
    """Whether ``day`` is scheduled work for a Monday-first week of N days."""
    if day.weekday() >= working_days_per_week:
        return False
    return day not in dutch_public_holidays(day.year)


def count_days(
    start: date,
    end: date,
    method: ProrationMethod = ProrationMethod.CALENDAR,
    working_days_per_week: int = 5,
) -> int:
    """Number of days in the inclusive range, by the given counting method."""
    if start > end:
        return 0
    if method == ProrationMethod.CALENDAR:
        return (end - start).days + 1
    total = 0
    day = start
    while day <= end:
        if is_working_day(day, working_days_per_week):
            total += 1
        day += timedelta(days=1)
    return total


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def month_fraction(
    start: date,
    end: date,
    method: ProrationMethod = ProrationMethod.CALENDAR,
    working_days_per_week: int = 5,
) -> Decimal:
    """Length of [start, end] in months.

    Every touched month contributes the share of its days that fall inside the
    range, so a whole calendar month is exactly 1 and two half months add up
    the same way as one half month each.
    """
    if start > end:
        return Decimal("0")
    total = Decimal("0")
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        month_start, month_end = _month_bounds(year, month)
        inside = count_days(
            max(start, month_start), min(end, month_end), method, working_days_per_week
        )
        whole = count_days(month_start, month_end, method, working_days_per_week)
        if whole:
            total += Decimal(inside) / Decimal(whole)
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return total
