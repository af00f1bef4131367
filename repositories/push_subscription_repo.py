"""
repositories/push_subscription_repo.py
--------------------------------------
Data access layer for Web Push subscriptions.
"""

from db.connection import get_connection, release_connection
from models.push_subscription import PushSubscription
from utils.logger import get_logger

logger = get_logger(__name__)


class PushSubscriptionRepository:
    """Repository for CRUD operations on the push_subscriptions table."""

    def upsert(self, sub: PushSubscription) -> PushSubscription:
        """
        Register a device endpoint, or move an existing endpoint to this user
        with fresh keys. Endpoints are unique across users.
        """
        sql = """
            INSERT INTO push_subscriptions (user_id, endpoint, p256dh, auth, user_agent)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (endpoint) DO UPDATE SET
                user_id = EXCLUDED.user_id,
                p256dh = EXCLUDED.p256dh,
                auth = EXCLUDED.auth,
                updated_at = NOW()
            RETURNING id, created_at, updated_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (sub.user_id, sub.endpoint, sub.p256dh, sub.auth, sub.user_agent))
                row = cur.fetchone()
                sub.id = str(row[0])
                sub.created_at = row[1]
                sub.updated_at = row[2]
            conn.commit()
            return sub
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to save push subscription for user {sub.user_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def list_for_user(self, user_id: str) -> list[PushSubscription]:
        """All registered devices of a user."""
        sql = """
            SELECT id, user_id, endpoint, p256dh, auth, user_agent, created_at, updated_at
            FROM push_subscriptions WHERE user_id = %s ORDER BY created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id,))
                return [self._row_to_subscription(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def delete(self, subscription_id: str) -> bool:
        """Remove a subscription by ID (used when the push service reports it gone)."""
        return self._execute_delete(
            "DELETE FROM push_subscriptions WHERE id = %s;", (subscription_id,), subscription_id
        )

    def delete_for_user(self, user_id: str, endpoint: str) -> bool:
        """Unsubscribe one of a user's devices."""
        return self._execute_delete(
            "DELETE FROM push_subscriptions WHERE user_id = %s AND endpoint = %s;",
            (user_id, endpoint),
            endpoint,
        )

    @staticmethod
    def _execute_delete(sql: str, params: tuple, label: str) -> bool:
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                deleted = cur.rowcount > 0
            conn.commit()
            return deleted
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to delete push subscription {label}: {e}")
            raise
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_subscription(row: tuple) -> PushSubscription:
        return PushSubscription(
            id=str(row[0]),
            user_id=row[1],
            endpoint=row[2],
            p256dh=row[3],
            auth=row[4],
            user_agent=row[5],
            created_at=row[6],
            updated_at=row[7],
        )
