"""Shared fixtures: an in-memory calendar provider and a controllable clock."""
import itertools
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from provider.base import CalendarEvent, CalendarHandle, CalendarProvider
from reconciler.engine import CalendarSynchronizer
from reconciler.errors import ProviderFault


PRIMARY_ID = 'primary@example.com'
REMOTE_ID = 'remote@example.com'

_ids = itertools.count(1)


class FakeEvent(CalendarEvent):
    """In-memory event that records tag writes and deletion."""

    def __init__(self, calendar: 'FakeCalendar', title: str, start: datetime,
                 end: datetime, tags: Optional[Dict[str, str]] = None):
        self.calendar = calendar
        self._id = f"evt-{next(_ids)}"
        self._title = title
        self.start = start
        self.end = end
        self.tags = dict(tags or {})
        self.tag_writes = 0
        self.deleted = False

    @property
    def id(self) -> str:
        return self._id

    @property
    def title(self) -> str:
        return self._title

    @property
    def start_time(self) -> datetime:
        return self.start

    @property
    def end_time(self) -> datetime:
        return self.end

    def get_tag(self, key: str) -> Optional[str]:
        return self.tags.get(key)

    def set_tag(self, key: str, value: str) -> None:
        self.tag_writes += 1
        self.tags[key] = value

    def delete(self) -> None:
        self.deleted = True
        self.calendar.events.remove(self)
        self.calendar.deleted_count += 1


class FakeCalendar(CalendarHandle):
    """In-memory calendar with overlap queries like the Google API."""

    def __init__(self, calendar_id: str):
        self._id = calendar_id
        self.events: List[FakeEvent] = []
        self.created_count = 0
        self.deleted_count = 0
        self.fail_on_create: Optional[Exception] = None

    @property
    def id(self) -> str:
        return self._id

    def add_event(self, title: str, start: datetime, end: datetime,
                  tags: Optional[Dict[str, str]] = None) -> FakeEvent:
        event = FakeEvent(self, title, start, end, tags)
        self.events.append(event)
        return event

    def get_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        if start >= end:
            raise ProviderFault("The specified time range is empty.", status_code=400)
        return [
            event for event in self.events
            if event.start < end and event.end > start
        ]

    def create_event(self, title: str, start: datetime, end: datetime) -> CalendarEvent:
        if self.fail_on_create is not None:
            raise self.fail_on_create
        self.created_count += 1
        return self.add_event(title, start, end)

    def placeholders(self) -> List[FakeEvent]:
        return [event for event in self.events if event.tags.get('isPlaceholder') == 'true']

    def genuine(self) -> List[FakeEvent]:
        return [event for event in self.events if 'isPlaceholder' not in event.tags]


class FakeProvider(CalendarProvider):
    """Provider resolving a fixed set of in-memory calendars."""

    def __init__(self, *calendars: FakeCalendar):
        self.calendars = {calendar.id: calendar for calendar in calendars}

    def get_calendar(self, calendar_id: str) -> Optional[CalendarHandle]:
        return self.calendars.get(calendar_id)


class Clock:
    """Callable clock that tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def now():
    """Monday 2024-01-15 08:00 UTC."""
    return datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return Clock(now)


@pytest.fixture
def primary():
    return FakeCalendar(PRIMARY_ID)


@pytest.fixture
def remote():
    return FakeCalendar(REMOTE_ID)


@pytest.fixture
def provider(primary, remote):
    return FakeProvider(primary, remote)


@pytest.fixture
def synchronizer(provider, clock):
    return CalendarSynchronizer.create(provider, PRIMARY_ID, REMOTE_ID, clock=clock)


@pytest.fixture
def placeholder_tags():
    """Build the tag set of a placeholder mirrored from ``source``."""
    def _tags(source_event_id: str, source_calendar_id: str) -> Dict[str, str]:
        return {
            'isPlaceholder': 'true',
            'sourceEventId': source_event_id,
            'sourceCalendarId': source_calendar_id,
        }
    return _tags
