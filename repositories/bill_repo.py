"""
repositories/bill_repo.py
-------------------------
Data access layer for bills.
All SQL queries related to the `bills` table live here.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from db.connection import get_connection, release_connection
from models.bill import Bill, STATUS_PAID, STATUS_UPCOMING
from models.reminder import Reminder
from repositories.reminder_repo import insert_assignees, insert_reminder
from utils.logger import get_logger

logger = get_logger(__name__)

BILL_COLUMNS = """
    id, family_id, name, description, amount, currency, due_date, frequency,
    recurrence_end_date, status, paid_at, paid_by_id, reminder_id,
    reminder_days_before, created_by_id, created_at, updated_at
"""

_INSERT_BILL_SQL = """
    INSERT INTO bills
        (family_id, name, description, amount, currency, due_date, frequency,
         recurrence_end_date, status, reminder_days_before, created_by_id)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING id, created_at, updated_at;
"""


class BillRepository:
    """Repository for CRUD operations on the bills table."""

    # ── CREATE ────────────────────────────────────────────

    def add_with_reminder(
        self,
        bill: Bill,
        reminder: Optional[Reminder],
        assignee_ids: Iterable[str] = (),
    ) -> Bill:
        """
        Insert a bill and, optionally, its reminder and the reminder's
        assignees in a single transaction.

        The reminder's `source_entity_id` and the bill's `reminder_id` are
        filled in here so the link is consistent on both sides.

        Returns:
            The persisted bill.
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                self._insert(cur, bill)
                if reminder is not None:
                    reminder.source_entity_id = bill.id
                    insert_reminder(cur, reminder)
                    insert_assignees(cur, reminder.id, assignee_ids)
                    cur.execute(
                        "UPDATE bills SET reminder_id = %s WHERE id = %s;",
                        (reminder.id, bill.id),
                    )
                    bill.reminder_id = reminder.id
            conn.commit()
            logger.info(
                f"Added bill '{bill.name}' #{bill.id}"
                + (f" with reminder #{bill.reminder_id}" if bill.reminder_id else "")
            )
            return bill
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to add bill '{bill.name}': {e}")
            raise
        finally:
            release_connection(conn)

    # ── READ ──────────────────────────────────────────────

    def get_by_id(self, bill_id: str) -> Optional[Bill]:
        """Fetch a single bill by ID."""
        sql = f"SELECT {BILL_COLUMNS} FROM bills WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (bill_id,))
                row = cur.fetchone()
                return self._row_to_bill(row) if row else None
        finally:
            release_connection(conn)

    # ── UPDATE ────────────────────────────────────────────

    def update(self, bill: Bill, reminder: Optional[Reminder] = None) -> Bill:
        """
        Persist the editable fields of `bill`. When `reminder` is given, its
        time, title and description are rewritten in the same transaction.
        """
        sql = """
            UPDATE bills
            SET name = %s, description = %s, amount = %s, currency = %s,
                due_date = %s, frequency = %s, recurrence_end_date = %s,
                reminder_days_before = %s, updated_at = %s
            WHERE id = %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    bill.name, bill.description, bill.amount, bill.currency,
                    bill.due_date, bill.frequency, bill.recurrence_end_date,
                    bill.reminder_days_before, bill.updated_at, bill.id,
                ))
                if reminder is not None:
                    cur.execute(
                        "UPDATE reminders SET remind_at = %s, title = %s, description = %s WHERE id = %s;",
                        (reminder.remind_at, reminder.title, reminder.description, reminder.id),
                    )
            conn.commit()
            return bill
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to update bill #{bill.id}: {e}")
            raise
        finally:
            release_connection(conn)

    def mark_paid(self, bill_id: str, user_id: str, paid_at: datetime) -> Optional[Bill]:
        """Set a bill's status to paid. Returns the updated bill, or None if missing."""
        sql = f"""
            UPDATE bills
            SET status = %s, paid_at = %s, paid_by_id = %s, updated_at = %s
            WHERE id = %s
            RETURNING {BILL_COLUMNS};
        """
        return self._update_returning(sql, (STATUS_PAID, paid_at, user_id, paid_at, bill_id), bill_id)

    def mark_unpaid(self, bill_id: str, now: datetime) -> Optional[Bill]:
        """Set a bill back to upcoming and clear the payment fields."""
        sql = f"""
            UPDATE bills
            SET status = %s, paid_at = NULL, paid_by_id = NULL, updated_at = %s
            WHERE id = %s
            RETURNING {BILL_COLUMNS};
        """
        return self._update_returning(sql, (STATUS_UPCOMING, now, bill_id), bill_id)

    # ── DELETE ────────────────────────────────────────────

    def delete(self, bill_id: str, reminder_id: Optional[str] = None) -> bool:
        """Delete a bill and, first, its linked reminder."""
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                if reminder_id:
                    cur.execute("DELETE FROM reminders WHERE id = %s;", (reminder_id,))
                cur.execute("DELETE FROM bills WHERE id = %s;", (bill_id,))
                deleted = cur.rowcount > 0
            conn.commit()
            if deleted:
                logger.info(f"Deleted bill #{bill_id}")
            return deleted
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to delete bill #{bill_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _insert(cur, bill: Bill) -> None:
        cur.execute(_INSERT_BILL_SQL, (
            bill.family_id, bill.name, bill.description, bill.amount,
            bill.currency, bill.due_date, bill.frequency,
            bill.recurrence_end_date, bill.status, bill.reminder_days_before,
            bill.created_by_id,
        ))
        row = cur.fetchone()
        bill.id = str(row[0])
        bill.created_at = row[1]
        bill.updated_at = row[2]

    def _update_returning(self, sql: str, params: tuple, bill_id: str) -> Optional[Bill]:
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
            conn.commit()
            return self._row_to_bill(row) if row else None
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to update bill #{bill_id}: {e}")
            raise
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_bill(row: tuple) -> Bill:
        """Convert a database row tuple to a Bill domain object."""
        return Bill(
            id=str(row[0]),
            family_id=str(row[1]),
            name=row[2],
            description=row[3],
            amount=Decimal(row[4]),
            currency=row[5],
            due_date=row[6],
            frequency=row[7],
            recurrence_end_date=row[8],
            status=row[9],
            paid_at=row[10],
            paid_by_id=row[11],
            reminder_id=str(row[12]) if row[12] else None,
            reminder_days_before=row[13],
            created_by_id=row[14],
            created_at=row[15],
            updated_at=row[16],
        )
