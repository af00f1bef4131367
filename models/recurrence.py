"""
models/recurrence.py
--------------------
Recurrence rule embedded in reminders (stored as JSONB) and the
frequency vocabulary shared with bills.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil.parser import isoparse

# Reminder recurrences
DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
REMINDER_FREQUENCIES = (DAILY, WEEKLY, MONTHLY)

# Bill-only steps
ONCE = "once"
FORTNIGHTLY = "fortnightly"
QUARTERLY = "quarterly"
YEARLY = "yearly"
BILL_FREQUENCIES = (ONCE, WEEKLY, FORTNIGHTLY, MONTHLY, QUARTERLY, YEARLY)


def to_naive(value: datetime) -> datetime:
    """Drop timezone info, converting aware values to UTC first."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@dataclass
class RecurrenceRule:
    """
    How often a reminder repeats.

    Attributes:
        frequency: 'daily' | 'weekly' | 'monthly'.
        interval: Positive multiplier (every N days/weeks/months).
        days_of_week: Weekdays 0-6. Kept for round-tripping only, the
            advancement algorithm does not consult it.
        end_date: Inclusive upper bound for the series.
    """
    frequency: str
    interval: int = 1
    days_of_week: Optional[list[int]] = None
    end_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.frequency not in REMINDER_FREQUENCIES:
            raise ValueError(f"Unsupported reminder frequency: {self.frequency!r}")
        if self.interval < 1:
            raise ValueError("Recurrence interval must be a positive integer")
        if self.days_of_week is not None:
            bad = [d for d in self.days_of_week if not 0 <= d <= 6]
            if bad:
                raise ValueError(f"Invalid weekday values: {bad}")
        if self.end_date is not None:
            self.end_date = to_naive(self.end_date)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecurrenceRule":
        """Build a rule from its JSON form (camelCase keys)."""
        end_date = data.get("endDate")
        if isinstance(end_date, str):
            end_date = isoparse(end_date)
        return cls(
            frequency=data["frequency"],
            interval=int(data.get("interval") or 1),
            days_of_week=data.get("daysOfWeek"),
            end_date=end_date,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON form stored in the database."""
        data: dict[str, Any] = {"frequency": self.frequency, "interval": self.interval}
        if self.days_of_week is not None:
            data["daysOfWeek"] = list(self.days_of_week)
        if self.end_date is not None:
            data["endDate"] = self.end_date.isoformat()
        return data
