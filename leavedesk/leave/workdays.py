"""Working-day arithmetic for leave ranges."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

WEEKEND_DAYS = {5, 6}  # Saturday, Sunday


def iter_dates(from_date: date, to_date: date):
    """Yield every date in [from_date, to_date]."""
    current = from_date
    while current <= to_date:
        yield current
        current += timedelta(days=1)


def count_working_days(
    from_date: date,
    to_date: date,
    holidays: Iterable[date] = (),
) -> int:
    """Count Monday–Friday dates in the inclusive range that are not holidays.

    A holiday falling on a weekend is not subtracted twice. An inverted
    range yields 0.
    """
    holiday_set = set(holidays)
    return sum(
        1
        for d in iter_dates(from_date, to_date)
        if d.weekday() not in WEEKEND_DAYS and d not in holiday_set
    )


def calendar_span(from_date: date, to_date: date) -> int:
    """Inclusive number of calendar days in the range (0 when inverted)."""
    return max(0, (to_date - from_date).days + 1)
