"""
models/push_subscription.py
---------------------------
A browser/device registered to receive Web Push notifications.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class PushSubscription:
    """
    One push endpoint belonging to a user. A user may have several (one per device).

    Attributes:
        endpoint: Push service URL, unique across all users.
        p256dh: Client public key used to encrypt payloads.
        auth: Client auth secret.
    """
    user_id: str
    endpoint: str
    p256dh: str
    auth: str
    user_agent: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_subscription_info(self) -> dict:
        """Shape expected by pywebpush."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }


@dataclass
class DispatchResult:
    """Per-user delivery counts from one dispatch call."""
    user_id: str
    sent: int = 0
    total: int = 0
    pruned: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
