"""
services/reminder_service.py
----------------------------
Business logic for creating and editing reminders.

Reminders created by a bill, task or recipe belong to that resource: only
their time and assignees may be changed here, and they can only be
removed by deleting the owning resource.
"""

from typing import Any, Iterable, Optional

from models.recurrence import RecurrenceRule
from models.reminder import Reminder
from repositories.reminder_repo import ReminderRepository
from utils.exceptions import NotFoundError, ResourceOwnedError
from utils.logger import get_logger

logger = get_logger(__name__)

_EDITABLE_FIELDS = {"title", "description", "remind_at", "recurrence", "assignee_ids"}
_RESOURCE_OWNED_EDITABLE = {"remind_at", "assignee_ids"}


class ReminderService:
    """Create, edit, dismiss and delete reminders while enforcing ownership rules."""

    def __init__(self, repo: Optional[ReminderRepository] = None):
        self.repo = repo or ReminderRepository()

    def create_reminder(self, reminder: Reminder, assignee_ids: Iterable[str] = ()) -> Reminder:
        """Persist a reminder. A recurring reminder starts anchored at its `remind_at`."""
        reminder.next_occurrence = reminder.remind_at if reminder.recurrence else None
        return self.repo.add(reminder, assignee_ids)

    def update_reminder(self, reminder_id: str, **changes: Any) -> Reminder:
        """
        Apply `changes` to a reminder.

        Accepted keys: title, description, remind_at, recurrence (a
        RecurrenceRule, its dict form, or None) and assignee_ids.

        Raises:
            NotFoundError: If the reminder does not exist.
            ResourceOwnedError: If a resource-owned reminder would have
                anything other than remind_at/assignee_ids changed.
            ValueError: For unknown fields.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown reminder fields: {', '.join(sorted(unknown))}")

        reminder = self.repo.get_by_id(reminder_id)
        if reminder is None:
            raise NotFoundError("reminder", reminder_id)

        if reminder.is_resource_owned:
            disallowed = sorted(set(changes) - _RESOURCE_OWNED_EDITABLE)
            if disallowed:
                raise ResourceOwnedError(
                    reminder_id,
                    f"Cannot modify {', '.join(disallowed)} for resource-owned reminders",
                )

        if "title" in changes:
            reminder.title = changes["title"]
        if "description" in changes:
            reminder.description = changes["description"]
        if "remind_at" in changes:
            reminder.remind_at = changes["remind_at"]
            if reminder.recurrence:
                reminder.next_occurrence = reminder.remind_at
        if "recurrence" in changes:
            rule = changes["recurrence"]
            if isinstance(rule, dict):
                rule = RecurrenceRule.from_dict(rule)
            reminder.recurrence = rule
            reminder.next_occurrence = reminder.remind_at if rule else None

        self.repo.update(reminder)
        if "assignee_ids" in changes:
            self.repo.replace_assignees(reminder_id, changes["assignee_ids"])

        logger.info(f"Updated reminder #{reminder_id}: {', '.join(sorted(changes))}")
        return reminder

    def delete_reminder(self, reminder_id: str) -> None:
        """
        Delete a standalone reminder.

        Raises:
            NotFoundError: If the reminder does not exist.
            ResourceOwnedError: If the reminder belongs to another resource.
        """
        reminder = self.repo.get_by_id(reminder_id)
        if reminder is None:
            raise NotFoundError("reminder", reminder_id)
        if reminder.is_resource_owned:
            raise ResourceOwnedError(
                reminder_id,
                "Cannot delete resource-owned reminders directly. Delete the source resource instead.",
            )
        self.repo.delete(reminder_id)

    def dismiss(self, reminder_id: str) -> Reminder:
        """Stop a reminder from firing. Allowed for resource-owned reminders too."""
        return self._set_dismissed(reminder_id, True)

    def undismiss(self, reminder_id: str) -> Reminder:
        """Re-arm a dismissed reminder. `notified_at` is left as it is."""
        return self._set_dismissed(reminder_id, False)

    def _set_dismissed(self, reminder_id: str, dismissed: bool) -> Reminder:
        if not self.repo.set_dismissed(reminder_id, dismissed):
            raise NotFoundError("reminder", reminder_id)
        logger.info(f"Reminder #{reminder_id} {'dismissed' if dismissed else 'undismissed'}")
        return self.repo.get_by_id(reminder_id)
