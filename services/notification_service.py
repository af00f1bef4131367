"""
services/notification_service.py
--------------------------------
Fans a notification out to every device a user has registered.

Responsibilities:
    - Deliver concurrently; one device failing never blocks the others.
    - Prune subscriptions the push service reports as gone (404/410).
    - Report counts instead of raising for partial failure.
"""

import asyncio
import json
from typing import Any, Optional

from config import PUSH_MAX_CONCURRENCY, PUSH_TIMEOUT_SECONDS
from models.push_subscription import DispatchResult, PushSubscription
from repositories.push_subscription_repo import PushSubscriptionRepository
from services.push_transport import WebPushTransport
from utils.exceptions import PushDeliveryError
from utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Delivers push payloads to all of a user's subscriptions."""

    def __init__(
        self,
        repo: Optional[PushSubscriptionRepository] = None,
        transport: Optional[WebPushTransport] = None,
        timeout: float = PUSH_TIMEOUT_SECONDS,
        max_concurrency: int = PUSH_MAX_CONCURRENCY,
    ):
        self.repo = repo or PushSubscriptionRepository()
        self.transport = transport or WebPushTransport()
        self.timeout = timeout
        self.max_concurrency = max_concurrency

    async def dispatch(self, user_id: str, payload: dict[str, Any]) -> DispatchResult:
        """
        Send `payload` to every subscription of `user_id`.

        Args:
            user_id: Recipient.
            payload: JSON-serialisable dict ({title, body, data}).

        Returns:
            DispatchResult with `sent` successes out of `total` subscriptions.
            A user with no subscriptions yields sent=0, total=0.
        """
        subscriptions = await asyncio.to_thread(self.repo.list_for_user, user_id)
        result = DispatchResult(user_id=user_id, total=len(subscriptions))
        if not subscriptions:
            logger.debug(f"User {user_id} has no push subscriptions")
            return result

        body = json.dumps(payload, default=str)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *(self._deliver(sub, body, semaphore) for sub in subscriptions),
            return_exceptions=True,
        )

        for sub, outcome in zip(subscriptions, outcomes):
            if outcome is None:
                result.sent += 1
            elif isinstance(outcome, PushDeliveryError) and outcome.is_expired:
                await self._prune(sub, outcome.status_code, result)
            else:
                result.failed.append(sub.id)
                logger.warning(f"Push to {sub.endpoint} for user {user_id} failed: {outcome!r}")

        logger.info(f"Delivered {result.sent}/{result.total} push notifications to user {user_id}")
        return result

    async def _deliver(self, sub: PushSubscription, body: str, semaphore: asyncio.Semaphore) -> None:
        # a worker thread cannot be cancelled: a timed-out send keeps its
        # slot until the thread returns
        await semaphore.acquire()
        send = asyncio.ensure_future(asyncio.to_thread(self.transport.send, sub, body))
        send.add_done_callback(lambda task: self._release(task, semaphore))
        try:
            await asyncio.wait_for(asyncio.shield(send), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise PushDeliveryError(f"Push timed out after {self.timeout}s") from exc

    @staticmethod
    def _release(task: asyncio.Future, semaphore: asyncio.Semaphore) -> None:
        semaphore.release()
        if not task.cancelled():
            # retrieve it so a late failure after a timeout is not reported as unhandled
            task.exception()

    async def _prune(self, sub: PushSubscription, status_code: int, result: DispatchResult) -> None:
        try:
            await asyncio.to_thread(self.repo.delete, sub.id)
        except Exception as e:
            logger.error(f"Failed to prune push subscription {sub.id}: {e}")
            result.failed.append(sub.id)
            return
        result.pruned.append(sub.id)
        logger.warning(f"Deleted expired push subscription {sub.endpoint} ({status_code})")
