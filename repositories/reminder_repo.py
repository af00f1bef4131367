"""
repositories/reminder_repo.py
-----------------------------
Data access layer for reminders and their assignees.
All SQL queries related to the `reminders` and `reminder_assignees`
tables live here.
"""

from datetime import datetime
from typing import Iterable, Optional

from psycopg2.extras import Json

from db.connection import get_connection, release_connection
from models.recurrence import RecurrenceRule
from models.reminder import Reminder
from utils.logger import get_logger

logger = get_logger(__name__)

REMINDER_COLUMNS = """
    id, family_id, title, description, remind_at, source,
    source_entity_type, source_entity_id, recurrence, next_occurrence,
    dismissed, notified_at, created_by_id, created_at
"""

_INSERT_REMINDER_SQL = """
    INSERT INTO reminders
        (family_id, title, description, remind_at, source, source_entity_type,
         source_entity_id, recurrence, next_occurrence, dismissed, notified_at, created_by_id)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING id, created_at;
"""


def insert_reminder(cur, reminder: Reminder) -> Reminder:
    """Insert a reminder using an open cursor. The caller owns the transaction."""
    cur.execute(_INSERT_REMINDER_SQL, (
        reminder.family_id, reminder.title, reminder.description,
        reminder.remind_at, reminder.source, reminder.source_entity_type,
        reminder.source_entity_id,
        Json(reminder.recurrence.to_dict()) if reminder.recurrence else None,
        reminder.next_occurrence, reminder.dismissed, reminder.notified_at,
        reminder.created_by_id,
    ))
    row = cur.fetchone()
    reminder.id = str(row[0])
    reminder.created_at = row[1]
    return reminder


def insert_assignees(cur, reminder_id: str, user_ids: Iterable[str]) -> None:
    """Attach users to a reminder using an open cursor."""
    for user_id in user_ids:
        cur.execute(
            """
            INSERT INTO reminder_assignees (reminder_id, user_id)
            VALUES (%s, %s)
            ON CONFLICT DO NOTHING;
            """,
            (reminder_id, user_id),
        )


class ReminderRepository:
    """Repository for reminders and the reminder_assignees junction table."""

    # ── CREATE ────────────────────────────────────────────

    def add(self, reminder: Reminder, assignee_ids: Iterable[str] = ()) -> Reminder:
        """
        Insert a new reminder together with its assignees.

        Args:
            reminder: The Reminder to persist.
            assignee_ids: Users that should be notified.

        Returns:
            The same object with its `id` and `created_at` populated.
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                insert_reminder(cur, reminder)
                insert_assignees(cur, reminder.id, assignee_ids)
            conn.commit()
            logger.info(f"Added reminder '{reminder.title}' #{reminder.id}")
            return reminder
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to add reminder: {e}")
            raise
        finally:
            release_connection(conn)

    # ── READ ──────────────────────────────────────────────

    def get_by_id(self, reminder_id: str) -> Optional[Reminder]:
        """Fetch a single reminder by ID."""
        sql = f"SELECT {REMINDER_COLUMNS} FROM reminders WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (reminder_id,))
                row = cur.fetchone()
                return self._row_to_reminder(row) if row else None
        finally:
            release_connection(conn)

    def get_due(self, now: datetime) -> list[Reminder]:
        """
        Reminders that are due and have not been notified for their
        current occurrence. Used by the scanner.
        """
        sql = f"""
            SELECT {REMINDER_COLUMNS} FROM reminders
            WHERE remind_at <= %s AND notified_at IS NULL AND dismissed = FALSE
            ORDER BY remind_at ASC;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (now,))
                return [self._row_to_reminder(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def get_notified_recurring(self) -> list[Reminder]:
        """Recurring reminders whose current occurrence was notified and needs advancing."""
        sql = f"""
            SELECT {REMINDER_COLUMNS} FROM reminders
            WHERE notified_at IS NOT NULL AND recurrence IS NOT NULL AND dismissed = FALSE
            ORDER BY remind_at ASC;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                return [self._row_to_reminder(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def get_assignee_ids(self, reminder_id: str) -> list[str]:
        """User IDs assigned to a reminder."""
        sql = "SELECT user_id FROM reminder_assignees WHERE reminder_id = %s ORDER BY user_id;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (reminder_id,))
                return [r[0] for r in cur.fetchall()]
        finally:
            release_connection(conn)

    # ── UPDATE ────────────────────────────────────────────

    def mark_notified(self, reminder_id: str, notified_at: datetime) -> bool:
        """
        Record that the current occurrence has been notified.

        The update only applies while `notified_at` is still NULL, so a second
        scanner racing on the same reminder sees False.
        """
        sql = "UPDATE reminders SET notified_at = %s WHERE id = %s AND notified_at IS NULL;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (notified_at, reminder_id))
                updated = cur.rowcount > 0
            conn.commit()
            return updated
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to mark reminder #{reminder_id} notified: {e}")
            raise
        finally:
            release_connection(conn)

    def rearm(self, reminder_id: str, next_at: datetime) -> None:
        """Move a recurring reminder to its next occurrence and clear `notified_at`."""
        sql = """
            UPDATE reminders
            SET remind_at = %s, next_occurrence = %s, notified_at = NULL
            WHERE id = %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (next_at, next_at, reminder_id))
            conn.commit()
            logger.info(f"Re-armed reminder #{reminder_id} for {next_at}")
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to re-arm reminder #{reminder_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def set_dismissed(self, reminder_id: str, dismissed: bool) -> bool:
        """Dismiss or re-arm a reminder. `notified_at` is left untouched."""
        sql = "UPDATE reminders SET dismissed = %s WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (dismissed, reminder_id))
                updated = cur.rowcount > 0
            conn.commit()
            return updated
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to set dismissed on reminder #{reminder_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def update(self, reminder: Reminder) -> Reminder:
        """Persist the editable fields of an existing reminder."""
        sql = """
            UPDATE reminders
            SET title = %s, description = %s, remind_at = %s,
                recurrence = %s, next_occurrence = %s
            WHERE id = %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    reminder.title, reminder.description, reminder.remind_at,
                    Json(reminder.recurrence.to_dict()) if reminder.recurrence else None,
                    reminder.next_occurrence, reminder.id,
                ))
            conn.commit()
            return reminder
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to update reminder #{reminder.id}: {e}")
            raise
        finally:
            release_connection(conn)

    def replace_assignees(self, reminder_id: str, user_ids: Iterable[str]) -> None:
        """Replace the whole assignee set of a reminder."""
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM reminder_assignees WHERE reminder_id = %s;", (reminder_id,))
                insert_assignees(cur, reminder_id, user_ids)
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to replace assignees of reminder #{reminder_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── DELETE ────────────────────────────────────────────

    def delete(self, reminder_id: str) -> bool:
        """Delete a reminder by ID. Assignees cascade."""
        sql = "DELETE FROM reminders WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (reminder_id,))
                deleted = cur.rowcount > 0
            conn.commit()
            if deleted:
                logger.info(f"Deleted reminder #{reminder_id}")
            return deleted
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to delete reminder #{reminder_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _row_to_reminder(row: tuple) -> Reminder:
        """Convert a database row tuple to a Reminder domain object."""
        return Reminder(
            id=str(row[0]),
            family_id=str(row[1]),
            title=row[2],
            description=row[3],
            remind_at=row[4],
            source=row[5],
            source_entity_type=row[6],
            source_entity_id=str(row[7]) if row[7] else None,
            recurrence=RecurrenceRule.from_dict(row[8]) if row[8] else None,
            next_occurrence=row[9],
            dismissed=row[10],
            notified_at=row[11],
            created_by_id=row[12],
            created_at=row[13],
        )
