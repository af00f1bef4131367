import asyncio
import json
import threading
from datetime import datetime, timedelta

from conftest import subscribe
from models.push_subscription import DispatchResult
from models.recurrence import RecurrenceRule
from models.reminder import Reminder
from services.notification_service import NotificationService
from services.scanner_service import ReminderScanner


class RecordingNotifier:
    def __init__(self, failing_users=()):
        self.calls = []
        self.failing_users = set(failing_users)

    async def dispatch(self, user_id, payload):
        self.calls.append((user_id, payload))
        if user_id in self.failing_users:
            raise RuntimeError(f"dispatch to {user_id} failed")
        return DispatchResult(user_id=user_id, sent=1, total=1)


def make_reminder(repo, remind_at, assignees=("alice",), recurrence=None, **kwargs):
    reminder = Reminder(
        family_id="fam-1",
        title=kwargs.pop("title", "Water the plants"),
        remind_at=remind_at,
        recurrence=recurrence,
        next_occurrence=remind_at if recurrence else None,
        **kwargs,
    )
    return repo.add(reminder, assignees)


def test_due_reminder_is_notified_once(reminder_repo, clock):
    reminder = make_reminder(reminder_repo, clock.now - timedelta(minutes=5))
    notifier = RecordingNotifier()
    scanner = ReminderScanner(reminder_repo, notifier, clock=clock)

    first = asyncio.run(scanner.run())
    second = asyncio.run(scanner.run())

    assert first.due_processed == 1
    assert second.due_processed == 0
    assert len(notifier.calls) == 1
    assert reminder_repo.rows[reminder.id].notified_at == clock.now


def test_future_and_dismissed_reminders_are_ignored(reminder_repo, clock):
    make_reminder(reminder_repo, clock.now + timedelta(hours=1))
    make_reminder(reminder_repo, clock.now - timedelta(hours=1), dismissed=True)
    notifier = RecordingNotifier()
    scanner = ReminderScanner(reminder_repo, notifier, clock=clock)

    summary = asyncio.run(scanner.run())

    assert summary.due_processed == 0
    assert notifier.calls == []


def test_payload_shape(reminder_repo, clock):
    reminder = make_reminder(
        reminder_repo,
        clock.now,
        title="Bill due: Power",
        description="120.00 NZD due on 2024-01-13",
        source="bill",
        source_entity_type="bill",
        source_entity_id="bill-1",
    )
    plain = make_reminder(reminder_repo, clock.now, assignees=("bob",), title="Stretch")
    notifier = RecordingNotifier()
    scanner = ReminderScanner(reminder_repo, notifier, clock=clock)

    asyncio.run(scanner.run())

    payloads = {user: payload for user, payload in notifier.calls}
    assert payloads["alice"] == {
        "title": "Bill due: Power",
        "body": "120.00 NZD due on 2024-01-13",
        "data": {
            "type": "reminder",
            "reminderId": reminder.id,
            "source": "bill",
            "sourceEntityType": "bill",
            "sourceEntityId": "bill-1",
        },
    }
    assert payloads["bob"]["body"] == "You have a reminder!"
    assert payloads["bob"]["data"]["reminderId"] == plain.id


def test_every_assignee_is_notified_even_if_one_fails(reminder_repo, clock):
    reminder = make_reminder(reminder_repo, clock.now, assignees=("alice", "bob", "carol"))
    notifier = RecordingNotifier(failing_users={"bob"})
    scanner = ReminderScanner(reminder_repo, notifier, clock=clock)

    result = asyncio.run(scanner.notify_reminder(reminder.id))

    assert sorted(user for user, _ in notifier.calls) == ["alice", "bob", "carol"]
    assert result.success
    assert (result.notifications_sent, result.total_assignees) == (2, 3)
    assert reminder_repo.rows[reminder.id].notified_at == clock.now


def test_reminder_without_assignees_is_rescanned_every_pass(reminder_repo, clock):
    reminder = make_reminder(reminder_repo, clock.now - timedelta(minutes=1), assignees=())
    notifier = RecordingNotifier()
    scanner = ReminderScanner(reminder_repo, notifier, clock=clock)

    for _ in range(3):
        summary = asyncio.run(scanner.run())
        assert summary.due_processed == 1

    assert notifier.calls == []
    assert reminder_repo.rows[reminder.id].notified_at is None

    reminder_repo.replace_assignees(reminder.id, ["alice"])
    asyncio.run(scanner.run())
    assert len(notifier.calls) == 1
    assert reminder_repo.rows[reminder.id].notified_at == clock.now


def test_notify_missing_or_dismissed_reminder(reminder_repo, clock):
    dismissed = make_reminder(reminder_repo, clock.now, dismissed=True)
    scanner = ReminderScanner(reminder_repo, RecordingNotifier(), clock=clock)

    missing = asyncio.run(scanner.notify_reminder("does-not-exist"))
    skipped = asyncio.run(scanner.notify_reminder(dismissed.id))

    assert not missing.success and missing.reason == "Reminder not found"
    assert not skipped.success and skipped.reason == "Reminder dismissed"
    assert reminder_repo.rows[dismissed.id].notified_at is None


def test_recurring_reminder_is_rearmed(reminder_repo, clock):
    anchor = datetime(2024, 1, 10, 8, 0)
    reminder = make_reminder(reminder_repo, anchor, recurrence=RecurrenceRule("weekly"))
    scanner = ReminderScanner(reminder_repo, RecordingNotifier(), clock=clock)

    summary = asyncio.run(scanner.run())

    row = reminder_repo.rows[reminder.id]
    assert summary.recurring_updated == 1
    assert row.remind_at == datetime(2024, 1, 17, 8, 0)
    assert row.next_occurrence == datetime(2024, 1, 17, 8, 0)
    assert row.notified_at is None
    assert not row.dismissed


def test_rearmed_reminder_fires_again_when_due(reminder_repo, clock):
    reminder = make_reminder(reminder_repo, datetime(2024, 1, 10, 8, 0), recurrence=RecurrenceRule("daily"))
    notifier = RecordingNotifier()
    scanner = ReminderScanner(reminder_repo, notifier, clock=clock)

    asyncio.run(scanner.run())
    asyncio.run(scanner.run())
    assert len(notifier.calls) == 1

    clock.now = datetime(2024, 1, 11, 8, 0)
    asyncio.run(scanner.run())
    assert len(notifier.calls) == 2
    assert reminder_repo.rows[reminder.id].remind_at == datetime(2024, 1, 12, 8, 0)


def test_recurrence_past_end_date_is_dismissed(reminder_repo, clock):
    rule = RecurrenceRule("monthly", end_date=datetime(2024, 2, 1))
    reminder = make_reminder(reminder_repo, datetime(2024, 1, 10, 8, 0), recurrence=rule)
    scanner = ReminderScanner(reminder_repo, RecordingNotifier(), clock=clock)

    asyncio.run(scanner.run())

    row = reminder_repo.rows[reminder.id]
    assert row.dismissed
    assert row.remind_at == datetime(2024, 1, 10, 8, 0)
    assert row.notified_at == clock.now


def test_non_recurring_reminder_stays_notified(reminder_repo, clock):
    reminder = make_reminder(reminder_repo, clock.now)
    scanner = ReminderScanner(reminder_repo, RecordingNotifier(), clock=clock)

    summary = asyncio.run(scanner.run())

    assert summary.recurring_updated == 0
    assert reminder_repo.rows[reminder.id].notified_at == clock.now
    assert not reminder_repo.rows[reminder.id].dismissed


def test_one_failing_reminder_does_not_stop_the_pass(reminder_repo, clock):
    broken = make_reminder(reminder_repo, clock.now - timedelta(minutes=2), title="broken")
    healthy = make_reminder(reminder_repo, clock.now - timedelta(minutes=1), title="healthy")
    original = reminder_repo.get_assignee_ids

    def flaky_assignees(reminder_id):
        if reminder_id == broken.id:
            raise RuntimeError("connection reset")
        return original(reminder_id)

    reminder_repo.get_assignee_ids = flaky_assignees
    scanner = ReminderScanner(reminder_repo, RecordingNotifier(), clock=clock)

    summary = asyncio.run(scanner.run())

    assert summary.due_processed == 2
    assert summary.failures == [broken.id]
    assert reminder_repo.rows[healthy.id].notified_at == clock.now
    assert reminder_repo.rows[broken.id].notified_at is None


def test_failing_selection_still_returns_summary(reminder_repo, clock):
    def unavailable(now):
        raise RuntimeError("database unavailable")

    reminder_repo.get_due = unavailable
    scanner = ReminderScanner(reminder_repo, RecordingNotifier(), clock=clock)

    summary = asyncio.run(scanner.run())

    assert summary.to_dict() == {"dueProcessed": 0, "recurringUpdated": 0}


def test_already_notified_by_other_worker(reminder_repo, clock):
    reminder = make_reminder(reminder_repo, clock.now)
    scanner = ReminderScanner(reminder_repo, RecordingNotifier(), clock=clock)
    earlier = clock.now - timedelta(seconds=1)
    reminder_repo.mark_notified(reminder.id, earlier)

    result = asyncio.run(scanner.notify_reminder(reminder.id))

    assert result.success
    assert reminder_repo.rows[reminder.id].notified_at == earlier


def test_end_to_end_with_push_devices(reminder_repo, push_repo, transport, clock):
    subscribe(push_repo, "alice", "https://push.example/phone")
    subscribe(push_repo, "alice", "https://push.example/laptop")
    subscribe(push_repo, "bob", "https://push.example/bob")
    reminder = make_reminder(reminder_repo, clock.now, assignees=("alice", "bob"))
    scanner = ReminderScanner(
        reminder_repo,
        NotificationService(repo=push_repo, transport=transport),
        clock=clock,
    )

    asyncio.run(scanner.run())

    assert len(transport.sent) == 3
    assert {json.loads(body)["data"]["reminderId"] for _, body in transport.sent} == {reminder.id}


def test_repository_calls_run_off_the_event_loop(reminder_repo, clock):
    make_reminder(reminder_repo, clock.now - timedelta(minutes=1))
    loop_thread = threading.get_ident()
    seen = {}

    for name in ("get_due", "get_by_id", "get_assignee_ids", "mark_notified"):
        original = getattr(reminder_repo, name)

        def recording(*args, _name=name, _original=original):
            seen[_name] = threading.get_ident()
            return _original(*args)

        setattr(reminder_repo, name, recording)

    scanner = ReminderScanner(reminder_repo, RecordingNotifier(), clock=clock)
    asyncio.run(scanner.run())

    assert set(seen) == {"get_due", "get_by_id", "get_assignee_ids", "mark_notified"}
    assert loop_thread not in seen.values()
