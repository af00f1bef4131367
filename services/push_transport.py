"""
services/push_transport.py
--------------------------
Web Push delivery using VAPID-signed requests (pywebpush).
"""

import requests
from pywebpush import WebPushException, webpush

from config import PUSH_TIMEOUT_SECONDS, VAPID_PRIVATE_KEY, VAPID_SUBJECT
from models.push_subscription import PushSubscription
from utils.exceptions import PushDeliveryError
from utils.logger import get_logger

logger = get_logger(__name__)


class WebPushTransport:
    """
    Sends one encrypted payload to one push endpoint.

    `send` is blocking; callers running on an event loop should move it to a
    worker thread.
    """

    def __init__(
        self,
        private_key: str = VAPID_PRIVATE_KEY,
        subject: str = VAPID_SUBJECT,
        timeout: float = PUSH_TIMEOUT_SECONDS,
    ):
        if not private_key:
            logger.warning("VAPID_PRIVATE_KEY is not set; push deliveries will fail.")
        self.private_key = private_key
        self.subject = subject
        self.timeout = timeout

    def send(self, subscription: PushSubscription, payload_json: str) -> None:
        """
        Deliver `payload_json` to a single subscription.

        Raises:
            PushDeliveryError: With the push service's HTTP status when it
                rejected the message, or None when no response was received.
        """
        try:
            webpush(
                subscription_info=subscription.to_subscription_info(),
                data=payload_json,
                vapid_private_key=self.private_key,
                # pywebpush fills in `aud`/`exp` on the dict it is given
                vapid_claims={"sub": self.subject},
                timeout=self.timeout,
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise PushDeliveryError(f"Push rejected: {exc.message}", status_code=status) from exc
        except requests.RequestException as exc:
            raise PushDeliveryError(f"Push request failed: {exc}") from exc
