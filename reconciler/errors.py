"""Error types raised by the free/busy reconciliation engine."""
from typing import Optional


class SyncError(Exception):
    """Base class for all synchronization errors."""


class MissingParameter(SyncError):
    """A required configuration value was not supplied."""


class InvalidParameter(SyncError):
    """A configuration value was supplied but cannot be used."""


class CalendarNotFound(SyncError):
    """A calendar id could not be resolved by the provider."""

    def __init__(self, calendar_id: str):
        super().__init__(f"Calendar with ID {calendar_id} not found")
        self.calendar_id = calendar_id


class ProviderFault(SyncError):
    """A calendar provider call (fetch, create, delete, tag) failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
