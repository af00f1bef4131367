"""
models/reminder.py
------------------
Domain model for reminders and their notification results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from models.recurrence import RecurrenceRule

SOURCE_USER = "user"
SOURCE_RECIPE = "recipe"
SOURCE_BILL = "bill"
SOURCE_TASK = "task"
REMINDER_SOURCES = (SOURCE_USER, SOURCE_RECIPE, SOURCE_BILL, SOURCE_TASK)


@dataclass
class Reminder:
    """
    A reminder that becomes due at `remind_at`.

    Attributes:
        id: Database primary key (None for new records).
        family_id: Owning family.
        title: Notification title.
        description: Optional notification body.
        remind_at: Instant the reminder becomes due.
        source: 'user' for standalone reminders, otherwise the kind of
            resource that owns it ('recipe', 'bill', 'task').
        source_entity_type: Back-reference type to the owning resource.
        source_entity_id: Back-reference id to the owning resource.
        recurrence: Optional repeat rule.
        next_occurrence: Anchor for the next advancement; None when not recurring.
        dismissed: Dismissed reminders are never scanned.
        notified_at: Set once the current occurrence has been notified.
        created_by_id: User who created the reminder.
        created_at: Timestamp when the record was created.
    """
    family_id: str
    title: str
    remind_at: datetime
    description: Optional[str] = None
    source: str = SOURCE_USER
    source_entity_type: Optional[str] = None
    source_entity_id: Optional[str] = None
    recurrence: Optional[RecurrenceRule] = None
    next_occurrence: Optional[datetime] = None
    dismissed: bool = False
    notified_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_resource_owned(self) -> bool:
        return self.source != SOURCE_USER

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    def to_push_payload(self, default_body: str) -> dict[str, Any]:
        """Build the JSON payload delivered to the push service."""
        return {
            "title": self.title,
            "body": self.description or default_body,
            "data": {
                "type": "reminder",
                "reminderId": self.id,
                "source": self.source,
                "sourceEntityType": self.source_entity_type,
                "sourceEntityId": self.source_entity_id,
            },
        }

    def __str__(self) -> str:
        state = "dismissed" if self.dismissed else ("notified" if self.notified_at else "armed")
        return f"{self.title} @ {self.remind_at:%Y-%m-%d %H:%M} [{state}]"


@dataclass
class NotifyResult:
    """Outcome of notifying the assignees of a single reminder."""
    reminder_id: str
    success: bool
    reason: Optional[str] = None
    notifications_sent: int = 0
    total_assignees: int = 0


@dataclass
class ScanSummary:
    """Counts reported by one scanner pass."""
    due_processed: int = 0
    recurring_updated: int = 0
    failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        return {
            "dueProcessed": self.due_processed,
            "recurringUpdated": self.recurring_updated,
        }
