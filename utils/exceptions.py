"""
utils/exceptions.py
-------------------
Error types shared by the repository and service layers.
"""

from typing import Optional


class SchedulerError(Exception):
    """Base class for all errors raised by this application."""


class NotFoundError(SchedulerError):
    """A referenced bill or reminder does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found")


class ResourceOwnedError(SchedulerError):
    """
    Raised when a reminder owned by another resource (bill, task, recipe)
    is modified in a way only its owner may perform.
    """

    def __init__(self, reminder_id: str, message: str):
        self.reminder_id = reminder_id
        super().__init__(message)


class PushDeliveryError(SchedulerError):
    """
    A push transport failure.

    Attributes:
        status_code: HTTP status returned by the push service, or None when
            the request never got a response (network error, timeout).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_expired(self) -> bool:
        """True when the push service reports the endpoint as gone."""
        return self.status_code in (404, 410)


class RegenerationError(SchedulerError):
    """Creating the successor of a paid recurring bill failed."""


class DatabaseUnavailableError(SchedulerError):
    """A connection was requested before the pool was set up or after it closed."""
