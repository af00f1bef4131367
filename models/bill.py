"""
models/bill.py
--------------
Domain model for household bills.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from models.recurrence import BILL_FREQUENCIES, ONCE

STATUS_UPCOMING = "upcoming"
STATUS_PAID = "paid"
# Never stored; derived from due_date at display time.
STATUS_OVERDUE = "overdue"


@dataclass
class Bill:
    """
    Represents a bill, optionally recurring.

    Attributes:
        id: Database primary key (None for new records).
        family_id: Owning family.
        name: Friendly name (e.g. 'Power', 'Rent').
        amount: Amount due, never negative.
        currency: ISO currency code.
        due_date: When the bill is due.
        frequency: 'once' | 'weekly' | 'fortnightly' | 'monthly' | 'quarterly' | 'yearly'.
        recurrence_end_date: No successor is generated past this date.
        status: 'upcoming' or 'paid'.
        paid_at / paid_by_id: Set while the bill is paid.
        reminder_id: Linked reminder (source='bill').
        reminder_days_before: How many days before due date to remind (0-30).
    """
    family_id: str
    name: str
    amount: Decimal
    due_date: datetime
    currency: str = "NZD"
    description: Optional[str] = None
    frequency: str = ONCE
    recurrence_end_date: Optional[datetime] = None
    status: str = STATUS_UPCOMING
    paid_at: Optional[datetime] = None
    paid_by_id: Optional[str] = None
    reminder_id: Optional[str] = None
    reminder_days_before: int = 3
    created_by_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.amount = Decimal(str(self.amount))
        if self.amount < 0:
            raise ValueError("Bill amount cannot be negative")
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency!r}")
        if self.frequency not in BILL_FREQUENCIES:
            raise ValueError(f"Unsupported bill frequency: {self.frequency!r}")
        if not 0 <= self.reminder_days_before <= 30:
            raise ValueError("reminder_days_before must be between 0 and 30")

    @property
    def is_recurring(self) -> bool:
        return self.frequency != ONCE

    def effective_status(self, now: datetime) -> str:
        """Status as shown to users: unpaid bills past their due date are overdue."""
        if self.status == STATUS_UPCOMING and self.due_date < now:
            return STATUS_OVERDUE
        return self.status

    def reminder_title(self) -> str:
        return f"Bill due: {self.name}"

    def reminder_description(self) -> str:
        return f"{self.amount} {self.currency} due on {self.due_date:%Y-%m-%d}"

    def __str__(self) -> str:
        return f"{self.name}: {self.amount} {self.currency} ({self.frequency}) - Due: {self.due_date:%Y-%m-%d}"
