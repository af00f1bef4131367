"""
main.py
-------
Entry point for the reminder worker.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Build the push transport, notification service and scanner once.
    - Run the due-reminder scan on a fixed interval until SIGINT/SIGTERM.
"""

import asyncio
import signal
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import SCAN_INTERVAL_SECONDS
from db.connection import close_pool, init_pool
from db.init_db import create_tables
from services.notification_service import NotificationService
from services.push_transport import WebPushTransport
from services.scanner_service import ReminderScanner
from utils.logger import get_logger

logger = get_logger(__name__)


async def process_due_reminders(scanner: ReminderScanner) -> None:
    """
    Scheduled job: notify due reminders and advance recurring ones.
    Runs every SCAN_INTERVAL_SECONDS.
    """
    summary = await scanner.run()
    logger.info(f"Scan summary: {summary.to_dict()}")


async def run_worker(scanner: ReminderScanner) -> None:
    """Schedule the scanner and block until the process is asked to stop."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        process_due_reminders,
        "interval",
        seconds=SCAN_INTERVAL_SECONDS,
        args=[scanner],
        id="process_due_reminders",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(),
    )
    scheduler.start()
    logger.info(f"Scheduled due-reminder scan (every {SCAN_INTERVAL_SECONDS}s)")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await stop.wait()
    logger.info("Stop signal received, shutting down scheduler...")
    scheduler.shutdown(wait=False)


def main() -> None:
    """Initialize and run the worker."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    create_tables()

    # ── 2. Build services ─────────────────────────────────
    notifier = NotificationService(transport=WebPushTransport())
    scanner = ReminderScanner(notifier=notifier)

    # ── 3. Run until stopped ──────────────────────────────
    logger.info("Reminder worker is running. Press Ctrl+C to stop.")
    try:
        asyncio.run(run_worker(scanner))
    finally:
        # ── 4. Cleanup on shutdown ────────────────────────
        close_pool()
        logger.info("Reminder worker stopped.")


if __name__ == "__main__":
    main()
