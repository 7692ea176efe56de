"""Fetches and partitions the events of one calendar."""
import logging
import time
from datetime import datetime
from typing import Callable

from provider.base import CalendarProvider
from reconciler.errors import CalendarNotFound
from reconciler.models import Snapshot

logger = logging.getLogger(__name__)


class EventSnapshotFetcher:
    """Reads calendar events and splits them into expired and active sets."""

    def __init__(self, provider: CalendarProvider, clock: Callable[[], datetime]):
        """
        Initialize the fetcher.

        Args:
            provider: Calendar provider used to resolve calendars
            clock: Returns the current time; read once per fetch
        """
        self.provider = provider
        self.clock = clock

    def fetch(self, calendar_id: str, window_start: datetime,
              window_end: datetime) -> Snapshot:
        """
        Fetch every event of a calendar within the window.

        An unresolvable calendar is logged and yields an empty snapshot so
        the rest of the pass can continue.

        Args:
            calendar_id: Calendar to read
            window_start: Inclusive start of the window
            window_end: Exclusive end of the window

        Returns:
            Snapshot with events that ended before now in ``expired`` and
            the rest in ``active``
        """
        start = time.perf_counter()

        calendar = self.provider.get_calendar(calendar_id)
        if calendar is None:
            logger.error(str(CalendarNotFound(calendar_id)))
            return Snapshot()

        events = calendar.get_events(window_start, window_end)

        now = self.clock()
        snapshot = Snapshot(
            expired=[event for event in events if event.end_time < now],
            active=[event for event in events if event.end_time >= now]
        )

        logger.info(
            f"Fetched {len(events)} events from calendar {calendar_id} - "
            f"Past events: {len(snapshot.expired)}, "
            f"Active events: {len(snapshot.active)} "
            f"({time.perf_counter() - start:.2f}s)"
        )
        return snapshot
