"""
services/bill_service.py
------------------------
Business logic for the bill lifecycle: creating a bill with its reminder,
paying and unpaying, and regenerating the next occurrence of a recurring
bill.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from models.bill import Bill, STATUS_UPCOMING
from models.reminder import Reminder, SOURCE_BILL
from repositories.bill_repo import BillRepository
from repositories.reminder_repo import ReminderRepository
from services.recurrence import next_bill_due_date, should_continue
from utils.exceptions import NotFoundError, RegenerationError
from utils.logger import get_logger

logger = get_logger(__name__)

_EDITABLE_BILL_FIELDS = {
    "name", "description", "amount", "currency", "due_date",
    "frequency", "recurrence_end_date", "reminder_days_before",
}


class BillService:
    """
    Handles all business logic for bills.

    Responsibilities:
        - Create bills together with their reminder, and keep it in step on edits.
        - Mark bills paid/unpaid and dismiss/re-arm the linked reminder.
        - Spawn the successor bill (and reminder) when a recurring bill is paid.
    """

    def __init__(
        self,
        bill_repo: Optional[BillRepository] = None,
        reminder_repo: Optional[ReminderRepository] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.bill_repo = bill_repo or BillRepository()
        self.reminder_repo = reminder_repo or ReminderRepository()
        self.clock = clock

    def create_bill(
        self,
        bill: Bill,
        assignee_ids: Iterable[str] = (),
        create_reminder: bool = True,
    ) -> Bill:
        """
        Persist a new bill and, when it makes sense, a reminder for it.

        A reminder is only created when requested, when `reminder_days_before`
        is positive and when the reminder time is still in the future.
        """
        reminder = None
        if create_reminder and bill.reminder_days_before > 0:
            reminder = self._build_reminder(bill)
        return self.bill_repo.add_with_reminder(bill, reminder, list(assignee_ids) if reminder else ())

    def update_bill(self, bill_id: str, **changes: Any) -> Bill:
        """
        Edit a bill. When the due date or the reminder lead time changes,
        the linked reminder is moved and its title and description are
        rewritten from the edited bill. Its `notified_at` is not touched.

        Raises:
            NotFoundError: If the bill does not exist.
            ValueError: For unknown fields or invalid values.
        """
        unknown = set(changes) - _EDITABLE_BILL_FIELDS
        if unknown:
            raise ValueError(f"Unknown bill fields: {', '.join(sorted(unknown))}")

        existing = self.bill_repo.get_by_id(bill_id)
        if existing is None:
            raise NotFoundError("bill", bill_id)

        # re-run the model's validation on the merged values
        bill = replace(existing, **changes, updated_at=self.clock())

        reminder = None
        if existing.reminder_id and ({"due_date", "reminder_days_before"} & set(changes)):
            reminder = self.reminder_repo.get_by_id(existing.reminder_id)
            if reminder is not None:
                reminder.remind_at = bill.due_date - timedelta(days=bill.reminder_days_before)
                reminder.title = bill.reminder_title()
                reminder.description = bill.reminder_description()

        self.bill_repo.update(bill, reminder)
        logger.info(
            f"Updated bill #{bill_id}: {', '.join(sorted(changes))}"
            + (f"; reminder moved to {reminder.remind_at}" if reminder else "")
        )
        return bill

    def pay(self, bill_id: str, user_id: str) -> Bill:
        """
        Mark a bill as paid by `user_id`.

        The linked reminder is dismissed. For recurring bills the next
        occurrence is generated; failing to do so is logged and does not
        affect the payment.

        Raises:
            NotFoundError: If the bill does not exist.
        """
        existing = self.bill_repo.get_by_id(bill_id)
        if existing is None:
            raise NotFoundError("bill", bill_id)

        paid = self.bill_repo.mark_paid(bill_id, user_id, self.clock())
        if paid is None:
            raise NotFoundError("bill", bill_id)
        logger.info(f"Bill '{existing.name}' #{bill_id} paid by {user_id}")

        if existing.reminder_id:
            self.reminder_repo.set_dismissed(existing.reminder_id, True)

        if existing.is_recurring:
            try:
                self.regenerate(existing)
            except RegenerationError as e:
                logger.error(f"Bill #{bill_id} paid but next occurrence was not created: {e}")

        return paid

    def unpay(self, bill_id: str) -> Bill:
        """
        Revert a payment. The linked reminder is re-armed; its `notified_at`
        is kept, so it does not fire again for an occurrence already notified.

        Raises:
            NotFoundError: If the bill does not exist.
        """
        existing = self.bill_repo.get_by_id(bill_id)
        if existing is None:
            raise NotFoundError("bill", bill_id)

        updated = self.bill_repo.mark_unpaid(bill_id, self.clock())
        if updated is None:
            raise NotFoundError("bill", bill_id)
        logger.info(f"Bill '{existing.name}' #{bill_id} marked unpaid")

        if existing.reminder_id:
            self.reminder_repo.set_dismissed(existing.reminder_id, False)

        return updated

    def regenerate(self, bill: Bill) -> Optional[Bill]:
        """
        Create the bill that follows `bill` in its series.

        Returns:
            The new bill, or None when the series has ended.

        Raises:
            RegenerationError: If creating the successor fails.
        """
        next_due = next_bill_due_date(bill.due_date, bill.frequency)
        if not should_continue(next_due, bill.recurrence_end_date):
            logger.info(f"Bill series '{bill.name}' ended at {bill.recurrence_end_date}")
            return None

        try:
            successor = Bill(
                family_id=bill.family_id,
                name=bill.name,
                description=bill.description,
                amount=bill.amount,
                currency=bill.currency,
                due_date=next_due,
                frequency=bill.frequency,
                recurrence_end_date=bill.recurrence_end_date,
                status=STATUS_UPCOMING,
                reminder_days_before=bill.reminder_days_before,
                created_by_id=bill.created_by_id,
            )
            reminder = self._build_reminder(successor)
            assignee_ids: list[str] = []
            if reminder is not None and bill.reminder_id:
                assignee_ids = self.reminder_repo.get_assignee_ids(bill.reminder_id)
            saved = self.bill_repo.add_with_reminder(successor, reminder, assignee_ids)
        except Exception as e:
            raise RegenerationError(f"Could not create next occurrence of bill {bill.id}: {e}") from e

        logger.info(f"Created next occurrence of '{bill.name}' due {next_due:%Y-%m-%d} as #{saved.id}")
        return saved

    def delete_bill(self, bill_id: str) -> None:
        """
        Delete a bill together with its reminder.

        Raises:
            NotFoundError: If the bill does not exist.
        """
        existing = self.bill_repo.get_by_id(bill_id)
        if existing is None:
            raise NotFoundError("bill", bill_id)
        self.bill_repo.delete(bill_id, existing.reminder_id)

    def _build_reminder(self, bill: Bill) -> Optional[Reminder]:
        """Reminder for `bill`, or None if its reminder time has already passed."""
        remind_at = bill.due_date - timedelta(days=bill.reminder_days_before)
        if remind_at <= self.clock():
            return None
        return Reminder(
            family_id=bill.family_id,
            title=bill.reminder_title(),
            description=bill.reminder_description(),
            remind_at=remind_at,
            source=SOURCE_BILL,
            source_entity_type="bill",
            created_by_id=bill.created_by_id,
        )
