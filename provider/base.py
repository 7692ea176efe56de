"""Abstract calendar provider consumed by the reconciliation engine."""
import abc
from datetime import datetime
from typing import List, Optional


class CalendarEvent(abc.ABC):
    """A single event held by a calendar provider."""

    @property
    @abc.abstractmethod
    def id(self) -> str:
        """Provider id, unique within the owning calendar."""

    @property
    @abc.abstractmethod
    def title(self) -> str:
        ...

    @property
    @abc.abstractmethod
    def start_time(self) -> datetime:
        ...

    @property
    @abc.abstractmethod
    def end_time(self) -> datetime:
        ...

    @abc.abstractmethod
    def get_tag(self, key: str) -> Optional[str]:
        """Return the tag stored under ``key``, or None if it is not set."""

    @abc.abstractmethod
    def set_tag(self, key: str, value: str) -> None:
        """Store ``value`` under ``key`` on the provider side."""

    @abc.abstractmethod
    def delete(self) -> None:
        """Remove the event from its calendar."""


class CalendarHandle(abc.ABC):
    """A resolved calendar."""

    @property
    @abc.abstractmethod
    def id(self) -> str:
        ...

    @abc.abstractmethod
    def get_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        """
        Return every event overlapping [start, end).

        Args:
            start: Inclusive lower bound
            end: Exclusive upper bound

        Returns:
            List of events ordered as the provider returns them
        """

    @abc.abstractmethod
    def create_event(self, title: str, start: datetime, end: datetime) -> CalendarEvent:
        """Create an untagged event spanning [start, end)."""


class CalendarProvider(abc.ABC):
    """Entry point for resolving calendars by id."""

    @abc.abstractmethod
    def get_calendar(self, calendar_id: str) -> Optional[CalendarHandle]:
        """Resolve ``calendar_id``, returning None when it does not exist."""
