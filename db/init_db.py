"""
db/init_db.py
-------------
Creates the database schema (tables) if they do not already exist.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Reminders: standalone (source='user') or owned by a bill/task/recipe
CREATE TABLE IF NOT EXISTS reminders (
    id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    family_id           UUID NOT NULL,
    title               TEXT NOT NULL,
    description         TEXT,
    remind_at           TIMESTAMP NOT NULL,
    source              TEXT NOT NULL DEFAULT 'user'
                        CHECK (source IN ('user', 'recipe', 'bill', 'task')),
    source_entity_type  TEXT,
    source_entity_id    UUID,
    recurrence          JSONB,
    next_occurrence     TIMESTAMP,
    dismissed           BOOLEAN NOT NULL DEFAULT FALSE,
    notified_at         TIMESTAMP,
    created_by_id       TEXT,
    created_at          TIMESTAMP NOT NULL DEFAULT NOW()
);

-- Who gets notified for a reminder
CREATE TABLE IF NOT EXISTS reminder_assignees (
    reminder_id     UUID NOT NULL REFERENCES reminders(id) ON DELETE CASCADE,
    user_id         TEXT NOT NULL,
    PRIMARY KEY (reminder_id, user_id)
);

-- Bills: one row per occurrence; paying a recurring bill creates the next row
CREATE TABLE IF NOT EXISTS bills (
    id                      UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    family_id               UUID NOT NULL,
    name                    TEXT NOT NULL,
    description             TEXT,
    amount                  NUMERIC(12,2) NOT NULL CHECK (amount >= 0),
    currency                VARCHAR(3) NOT NULL DEFAULT 'NZD',
    due_date                TIMESTAMP NOT NULL,
    frequency               TEXT NOT NULL DEFAULT 'once'
                            CHECK (frequency IN ('once', 'weekly', 'fortnightly', 'monthly', 'quarterly', 'yearly')),
    recurrence_end_date     TIMESTAMP,
    status                  TEXT NOT NULL DEFAULT 'upcoming'
                            CHECK (status IN ('upcoming', 'paid', 'overdue')),
    paid_at                 TIMESTAMP,
    paid_by_id              TEXT,
    reminder_id             UUID REFERENCES reminders(id) ON DELETE SET NULL,
    reminder_days_before    INT NOT NULL DEFAULT 3 CHECK (reminder_days_before BETWEEN 0 AND 30),
    created_by_id           TEXT,
    created_at              TIMESTAMP NOT NULL DEFAULT NOW(),
    updated_at              TIMESTAMP NOT NULL DEFAULT NOW()
);

-- Web Push endpoints, several per user (one per device)
CREATE TABLE IF NOT EXISTS push_subscriptions (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id         TEXT NOT NULL,
    endpoint        TEXT NOT NULL UNIQUE,
    p256dh          TEXT NOT NULL,
    auth            TEXT NOT NULL,
    user_agent      TEXT,
    created_at      TIMESTAMP NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMP NOT NULL DEFAULT NOW()
);

-- Indexes for the scanner and lookups
CREATE INDEX IF NOT EXISTS reminders_family_id_idx ON reminders(family_id);
CREATE INDEX IF NOT EXISTS reminders_remind_at_idx ON reminders(remind_at);
CREATE INDEX IF NOT EXISTS reminders_dismissed_idx ON reminders(dismissed);
CREATE INDEX IF NOT EXISTS reminders_source_entity_idx ON reminders(source_entity_type, source_entity_id);
CREATE INDEX IF NOT EXISTS bills_family_id_idx ON bills(family_id);
CREATE INDEX IF NOT EXISTS bills_due_date_idx ON bills(due_date);
CREATE INDEX IF NOT EXISTS bills_status_idx ON bills(status);
CREATE INDEX IF NOT EXISTS push_subscriptions_user_id_idx ON push_subscriptions(user_id);
"""


def create_tables() -> None:
    """
    Execute the schema SQL to create all tables.
    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn = get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        conn.commit()
        logger.info("Database schema initialized successfully.")
    except Exception as e:
        conn.rollback()
        logger.error(f"Failed to initialize schema: {e}")
        raise
    finally:
        release_connection(conn)


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("Database schema created successfully.")
