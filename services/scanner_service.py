"""
services/scanner_service.py
---------------------------
The periodic job that notifies due reminders and advances recurring ones.

One pass:
    1. Find reminders that are due and not yet notified, push them to every
       assignee, then stamp `notified_at` (the idempotency guard).
    2. Find notified recurring reminders and either re-arm them for their
       next occurrence or dismiss them once the series has ended.

Every reminder is processed in isolation: an exception while handling one
is logged and the pass carries on with the rest.
Repository calls block, so they run in worker threads and leave the event
loop free for push fan-out.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional

from config import DEFAULT_REMINDER_BODY
from models.reminder import NotifyResult, Reminder, ScanSummary
from repositories.reminder_repo import ReminderRepository
from services.notification_service import NotificationService
from services.recurrence import next_occurrence, should_continue
from utils.logger import get_logger

logger = get_logger(__name__)

ADVANCE_REARMED = "rearmed"
ADVANCE_ENDED = "ended"
ADVANCE_SKIPPED = "skipped"


class ReminderScanner:
    """
    Scans reminders on a fixed cadence. Safe to call `run()` repeatedly:
    a reminder whose `notified_at` is set is never notified twice for the
    same occurrence.
    """

    def __init__(
        self,
        reminder_repo: Optional[ReminderRepository] = None,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.reminder_repo = reminder_repo or ReminderRepository()
        self.notifier = notifier or NotificationService()
        self.clock = clock

    async def run(self) -> ScanSummary:
        """
        Execute one scan pass.

        Returns:
            ScanSummary with the number of due reminders found and the number
            of notified recurring reminders considered for advancement.
        """
        summary = ScanSummary()
        now = self.clock()

        # ── 1. Due detection ──────────────────────────────
        due = await self._select(lambda: self.reminder_repo.get_due(now), "due reminders")
        logger.info(f"Found {len(due)} due reminders to process")
        summary.due_processed = len(due)

        for reminder in due:
            try:
                await self.notify_reminder(reminder.id)
            except Exception:
                logger.exception(f"Failed to notify reminder {reminder.id}")
                summary.failures.append(reminder.id)

        # ── 2. Recurrence advancement ─────────────────────
        recurring = await self._select(self.reminder_repo.get_notified_recurring, "recurring reminders")
        summary.recurring_updated = len(recurring)

        for reminder in recurring:
            try:
                await asyncio.to_thread(self.advance_reminder, reminder)
            except Exception:
                logger.exception(f"Failed to advance reminder {reminder.id}")
                summary.failures.append(reminder.id)

        logger.info(
            f"Scan finished: {summary.due_processed} due, "
            f"{summary.recurring_updated} recurring, {len(summary.failures)} failed"
        )
        return summary

    async def notify_reminder(self, reminder_id: str) -> NotifyResult:
        """
        Push one reminder to all of its assignees, then mark it notified.

        A reminder without assignees is skipped *without* being marked, so it
        keeps showing up as due until someone is assigned or it is dismissed.
        """
        reminder = await asyncio.to_thread(self.reminder_repo.get_by_id, reminder_id)
        if reminder is None:
            logger.info(f"Reminder {reminder_id} not found, skipping notification")
            return NotifyResult(reminder_id, success=False, reason="Reminder not found")

        if reminder.dismissed:
            logger.info(f"Reminder {reminder_id} is dismissed, skipping notification")
            return NotifyResult(reminder_id, success=False, reason="Reminder dismissed")

        assignee_ids = await asyncio.to_thread(self.reminder_repo.get_assignee_ids, reminder_id)
        if not assignee_ids:
            logger.info(f"Reminder {reminder_id} has no assignees, skipping notification")
            return NotifyResult(reminder_id, success=False, reason="No assignees")

        payload = reminder.to_push_payload(DEFAULT_REMINDER_BODY)
        results = await asyncio.gather(
            *(self.notifier.dispatch(user_id, payload) for user_id in assignee_ids),
            return_exceptions=True,
        )

        sent = 0
        for user_id, outcome in zip(assignee_ids, results):
            if isinstance(outcome, BaseException):
                logger.error(f"Dispatch to user {user_id} for reminder {reminder_id} failed: {outcome!r}")
            else:
                sent += 1

        marked = await asyncio.to_thread(self.reminder_repo.mark_notified, reminder_id, self.clock())
        if not marked:
            logger.warning(f"Reminder {reminder_id} was already marked notified by another worker")

        logger.info(f"Sent {sent}/{len(assignee_ids)} notifications for reminder {reminder_id}")
        return NotifyResult(
            reminder_id,
            success=True,
            notifications_sent=sent,
            total_assignees=len(assignee_ids),
        )

    def advance_reminder(self, reminder: Reminder) -> str:
        """
        Move a notified recurring reminder to its next occurrence, or dismiss
        it when the next occurrence falls after the rule's end date.

        Returns:
            'rearmed', 'ended', or 'skipped' (no recurrence/anchor).
        """
        rule = reminder.recurrence
        if rule is None or reminder.next_occurrence is None:
            logger.warning(f"Reminder {reminder.id} is recurring without an anchor, skipping")
            return ADVANCE_SKIPPED

        next_at = next_occurrence(reminder.next_occurrence, rule)
        if should_continue(next_at, rule.end_date):
            self.reminder_repo.rearm(reminder.id, next_at)
            return ADVANCE_REARMED

        self.reminder_repo.set_dismissed(reminder.id, True)
        logger.info(f"Recurrence of reminder {reminder.id} ended, dismissed")
        return ADVANCE_ENDED

    @staticmethod
    async def _select(query: Callable[[], list[Reminder]], label: str) -> list[Reminder]:
        try:
            return await asyncio.to_thread(query)
        except Exception:
            logger.exception(f"Failed to load {label}")
            return []
