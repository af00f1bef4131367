"""
db/connection.py
----------------
Shared PostgreSQL connection pool for the worker.

Repositories are called from the event loop thread and from the threads
`asyncio.to_thread` hands blocking work to, so the pool must be a
ThreadedConnectionPool. The worker is long-running: a connection that
died while checked out (server restart, idle timeout) is closed on
release instead of going back into the pool.
"""

from typing import Optional

import psycopg2
from psycopg2 import pool

from config import DATABASE_URL, DB_POOL_MAX, DB_POOL_MIN
from utils.exceptions import DatabaseUnavailableError
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: Optional[pool.ThreadedConnectionPool] = None


def init_pool(
    dsn: str = DATABASE_URL,
    min_conn: int = DB_POOL_MIN,
    max_conn: int = DB_POOL_MAX,
) -> None:
    """
    Open the pool. Calling it again while a pool is open does nothing.

    Raises:
        psycopg2.OperationalError: If the database is unreachable.
    """
    global _pool
    if _pool is not None:
        return
    try:
        _pool = pool.ThreadedConnectionPool(min_conn, max_conn, dsn)
        logger.info(f"Database pool ready ({min_conn}-{max_conn} connections)")
    except psycopg2.OperationalError as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise


def get_connection():
    """
    Check a connection out of the pool.

    Raises:
        DatabaseUnavailableError: If `init_pool()` has not been called.
    """
    if _pool is None:
        raise DatabaseUnavailableError("Database pool not initialized. Call init_pool() first.")
    return _pool.getconn()


def release_connection(conn) -> None:
    """Return `conn` to the pool, discarding it if it has been closed."""
    if _pool is None:
        return
    broken = bool(getattr(conn, "closed", 0))
    if broken:
        logger.warning("Discarding closed database connection")
    _pool.putconn(conn, close=broken)


def close_pool() -> None:
    """Close every pooled connection."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("Database connection pool closed.")
