"""
services/recurrence.py
----------------------
Calendar arithmetic for recurring reminders and bills.
Pure functions, no database access.
"""

from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from models.recurrence import (
    DAILY,
    FORTNIGHTLY,
    MONTHLY,
    ONCE,
    QUARTERLY,
    WEEKLY,
    YEARLY,
    RecurrenceRule,
)


def _add_months(anchor: datetime, months: int) -> datetime:
    # a day missing from the target month rolls into the next one
    return anchor.replace(day=1) + relativedelta(months=months) + timedelta(days=anchor.day - 1)


def step(anchor: datetime, frequency: str, interval: int = 1) -> datetime:
    """
    Advance `anchor` by `interval` steps of `frequency`.

    Month-based steps keep the day of month and let it overflow, so
    Jan 31 + 1 month is Mar 2 in a leap year and Feb 29 + 1 year is Mar 1.
    A series that has rolled over continues from the rolled date.

    Raises:
        ValueError: For an unknown frequency.
    """
    if frequency == DAILY:
        return anchor + timedelta(days=interval)
    if frequency == WEEKLY:
        return anchor + timedelta(days=7 * interval)
    if frequency == FORTNIGHTLY:
        return anchor + timedelta(days=14 * interval)
    if frequency == MONTHLY:
        return _add_months(anchor, interval)
    if frequency == QUARTERLY:
        return _add_months(anchor, 3 * interval)
    if frequency == YEARLY:
        return _add_months(anchor, 12 * interval)
    if frequency == ONCE:
        return anchor
    raise ValueError(f"Unknown frequency: {frequency!r}")


def next_occurrence(anchor: datetime, rule: RecurrenceRule) -> datetime:
    """Next firing of a recurring reminder. `rule.days_of_week` is not applied."""
    return step(anchor, rule.frequency, rule.interval)


def next_bill_due_date(due_date: datetime, frequency: str) -> datetime:
    """Due date of the bill that follows one due on `due_date`."""
    return step(due_date, frequency)


def should_continue(next_at: datetime, end_date: Optional[datetime]) -> bool:
    """True while the series has no end date or `next_at` is still within it."""
    return end_date is None or next_at <= end_date
