"""
In-memory stand-ins for the repositories and the push transport, so the
services can be exercised without PostgreSQL or a push service.
"""

import copy
import threading
import uuid
from datetime import datetime
from typing import Iterable, Optional

import pytest

from models.bill import Bill, STATUS_PAID, STATUS_UPCOMING
from models.push_subscription import PushSubscription
from models.reminder import Reminder


def _new_id() -> str:
    return str(uuid.uuid4())


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeReminderRepository:
    def __init__(self):
        self.rows: dict[str, Reminder] = {}
        self.assignees: dict[str, list[str]] = {}

    def add(self, reminder: Reminder, assignee_ids: Iterable[str] = ()) -> Reminder:
        reminder.id = reminder.id or _new_id()
        reminder.created_at = reminder.created_at or datetime(2024, 1, 1)
        self.rows[reminder.id] = copy.deepcopy(reminder)
        self.assignees[reminder.id] = list(dict.fromkeys(assignee_ids))
        return reminder

    def get_by_id(self, reminder_id: str) -> Optional[Reminder]:
        row = self.rows.get(reminder_id)
        return copy.deepcopy(row) if row else None

    def get_due(self, now: datetime) -> list[Reminder]:
        return [
            copy.deepcopy(r) for r in self.rows.values()
            if r.remind_at <= now and r.notified_at is None and not r.dismissed
        ]

    def get_notified_recurring(self) -> list[Reminder]:
        return [
            copy.deepcopy(r) for r in self.rows.values()
            if r.notified_at is not None and r.recurrence is not None and not r.dismissed
        ]

    def get_assignee_ids(self, reminder_id: str) -> list[str]:
        return list(self.assignees.get(reminder_id, []))

    def mark_notified(self, reminder_id: str, notified_at: datetime) -> bool:
        row = self.rows[reminder_id]
        if row.notified_at is not None:
            return False
        row.notified_at = notified_at
        return True

    def rearm(self, reminder_id: str, next_at: datetime) -> None:
        row = self.rows[reminder_id]
        row.remind_at = next_at
        row.next_occurrence = next_at
        row.notified_at = None

    def set_dismissed(self, reminder_id: str, dismissed: bool) -> bool:
        if reminder_id not in self.rows:
            return False
        self.rows[reminder_id].dismissed = dismissed
        return True

    def update(self, reminder: Reminder) -> Reminder:
        self.rows[reminder.id] = copy.deepcopy(reminder)
        return reminder

    def replace_assignees(self, reminder_id: str, user_ids: Iterable[str]) -> None:
        self.assignees[reminder_id] = list(dict.fromkeys(user_ids))

    def delete(self, reminder_id: str) -> bool:
        self.assignees.pop(reminder_id, None)
        return self.rows.pop(reminder_id, None) is not None


class FakeBillRepository:
    def __init__(self, reminder_repo: FakeReminderRepository):
        self.rows: dict[str, Bill] = {}
        self.reminder_repo = reminder_repo

    def add(self, bill: Bill) -> Bill:
        bill.id = bill.id or _new_id()
        self.rows[bill.id] = copy.deepcopy(bill)
        return bill

    def add_with_reminder(self, bill: Bill, reminder: Optional[Reminder], assignee_ids: Iterable[str] = ()) -> Bill:
        self.add(bill)
        if reminder is not None:
            reminder.source_entity_id = bill.id
            self.reminder_repo.add(reminder, assignee_ids)
            bill.reminder_id = reminder.id
            self.rows[bill.id].reminder_id = reminder.id
        return bill

    def get_by_id(self, bill_id: str) -> Optional[Bill]:
        row = self.rows.get(bill_id)
        return copy.deepcopy(row) if row else None

    def update(self, bill: Bill, reminder: Optional[Reminder] = None) -> Bill:
        self.rows[bill.id] = copy.deepcopy(bill)
        if reminder is not None:
            row = self.reminder_repo.rows[reminder.id]
            row.remind_at = reminder.remind_at
            row.title = reminder.title
            row.description = reminder.description
        return bill

    def mark_paid(self, bill_id: str, user_id: str, paid_at: datetime) -> Optional[Bill]:
        row = self.rows.get(bill_id)
        if row is None:
            return None
        row.status = STATUS_PAID
        row.paid_at = paid_at
        row.paid_by_id = user_id
        row.updated_at = paid_at
        return copy.deepcopy(row)

    def mark_unpaid(self, bill_id: str, now: datetime) -> Optional[Bill]:
        row = self.rows.get(bill_id)
        if row is None:
            return None
        row.status = STATUS_UPCOMING
        row.paid_at = None
        row.paid_by_id = None
        row.updated_at = now
        return copy.deepcopy(row)

    def delete(self, bill_id: str, reminder_id: Optional[str] = None) -> bool:
        if reminder_id:
            self.reminder_repo.delete(reminder_id)
        return self.rows.pop(bill_id, None) is not None


class FakePushSubscriptionRepository:
    """Called from worker threads by the dispatcher, hence the lock."""

    def __init__(self):
        self.rows: dict[str, PushSubscription] = {}
        self._lock = threading.Lock()

    def upsert(self, sub: PushSubscription) -> PushSubscription:
        with self._lock:
            for existing in self.rows.values():
                if existing.endpoint == sub.endpoint:
                    sub.id = existing.id
                    break
            sub.id = sub.id or _new_id()
            self.rows[sub.id] = sub
        return sub

    def list_for_user(self, user_id: str) -> list[PushSubscription]:
        with self._lock:
            return [s for s in self.rows.values() if s.user_id == user_id]

    def delete(self, subscription_id: str) -> bool:
        with self._lock:
            return self.rows.pop(subscription_id, None) is not None

    def delete_for_user(self, user_id: str, endpoint: str) -> bool:
        for sub in list(self.rows.values()):
            if sub.user_id == user_id and sub.endpoint == endpoint:
                return self.delete(sub.id)
        return False


class FakeTransport:
    """Records deliveries; `failures` maps an endpoint to the exception it raises."""

    def __init__(self):
        self.failures: dict[str, Exception] = {}
        self.sent: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def send(self, subscription: PushSubscription, payload_json: str) -> None:
        error = self.failures.get(subscription.endpoint)
        if error is not None:
            raise error
        with self._lock:
            self.sent.append((subscription.endpoint, payload_json))


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 10, 9, 0))


@pytest.fixture
def reminder_repo():
    return FakeReminderRepository()


@pytest.fixture
def bill_repo(reminder_repo):
    return FakeBillRepository(reminder_repo)


@pytest.fixture
def push_repo():
    return FakePushSubscriptionRepository()


@pytest.fixture
def transport():
    return FakeTransport()


def subscribe(push_repo: FakePushSubscriptionRepository, user_id: str, endpoint: str) -> PushSubscription:
    return push_repo.upsert(PushSubscription(user_id=user_id, endpoint=endpoint, p256dh="key", auth="secret"))
