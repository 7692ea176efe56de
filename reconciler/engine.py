"""Synchronization orchestrator for a primary/remote calendar pair."""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from provider.base import CalendarEvent, CalendarHandle, CalendarProvider
from reconciler import provenance
from reconciler.errors import CalendarNotFound, InvalidParameter, MissingParameter
from reconciler.models import (
    DEFAULT_LOOK_AHEAD,
    DEFAULT_LOOK_BACK,
    SyncResult,
    TimeWindow,
    TitleStrategy,
)
from reconciler.reconcilers import (
    CreationReconciler,
    ExpiryReconciler,
    ObsolescenceReconciler,
)
from reconciler.snapshot import EventSnapshotFetcher

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CalendarSynchronizer:
    """
    Mirrors busy time between a primary and a remote calendar.

    Each pass is stateless: everything it needs is re-derived from the
    placeholder tags stored in the two calendars, so passes can be repeated
    or interrupted without harm.

    Build instances with :meth:`create`, which validates the configuration
    and resolves both calendars.
    """

    def __init__(self, provider: CalendarProvider,
                 primary_calendar: CalendarHandle, remote_calendar: CalendarHandle,
                 look_back: timedelta, look_ahead: timedelta,
                 clock: Callable[[], datetime], title_strategy: TitleStrategy):
        self._primary_calendar = primary_calendar
        self._remote_calendar = remote_calendar
        self._look_back = look_back
        self._look_ahead = look_ahead
        self._clock = clock
        self._fetcher = EventSnapshotFetcher(provider, clock)
        self._expiry = ExpiryReconciler()
        self._obsolescence = ObsolescenceReconciler()
        self._creation = CreationReconciler(title_strategy)

    @classmethod
    def create(
        cls,
        provider: CalendarProvider,
        primary_calendar_id: Optional[str],
        remote_calendar_id: Optional[str],
        look_back: timedelta = DEFAULT_LOOK_BACK,
        look_ahead: timedelta = DEFAULT_LOOK_AHEAD,
        clock: Callable[[], datetime] = utc_now,
        title_strategy: Optional[TitleStrategy] = None
    ) -> "CalendarSynchronizer":
        """
        Validate configuration and build a synchronizer.

        Args:
            provider: Calendar provider holding both calendars
            primary_calendar_id: Id of the primary calendar
            remote_calendar_id: Id of the remote calendar
            look_back: How far before now to reconcile (default: 7 days)
            look_ahead: How far after now to reconcile (default: 60 days)
            clock: Returns the current time
            title_strategy: Titles for new placeholders

        Returns:
            Configured CalendarSynchronizer

        Raises:
            MissingParameter: If either calendar id is empty
            InvalidParameter: If a period is negative
            CalendarNotFound: If either calendar id does not resolve
        """
        if not primary_calendar_id or not remote_calendar_id:
            raise MissingParameter("primaryCalendarId and remoteCalendarId are required")

        if look_back < timedelta(0) or look_ahead < timedelta(0):
            raise InvalidParameter("lookBackPeriod and lookAheadPeriod must not be negative")

        primary_calendar = provider.get_calendar(primary_calendar_id)
        if primary_calendar is None:
            raise CalendarNotFound(primary_calendar_id)

        remote_calendar = provider.get_calendar(remote_calendar_id)
        if remote_calendar is None:
            raise CalendarNotFound(remote_calendar_id)

        return cls(
            provider=provider,
            primary_calendar=primary_calendar,
            remote_calendar=remote_calendar,
            look_back=look_back,
            look_ahead=look_ahead,
            clock=clock,
            title_strategy=title_strategy or TitleStrategy()
        )

    @property
    def primary_calendar_id(self) -> str:
        return self._primary_calendar.id

    @property
    def remote_calendar_id(self) -> str:
        return self._remote_calendar.id

    def synchronize_calendars(self) -> SyncResult:
        """
        Run one full reconciliation pass over both calendars.

        Steps run in a fixed order: expired placeholders are removed, then
        obsolete ones, then missing ones are created. Creation has to see
        calendars already cleared of stale placeholders, otherwise a moved
        event would end up with two.

        Returns:
            SyncResult with per-step counts

        Raises:
            Exception: Any provider failure, after logging it
        """
        start = time.perf_counter()
        result = SyncResult(started_at=self._clock())
        primary_id = self.primary_calendar_id
        remote_id = self.remote_calendar_id

        try:
            window = self._window()
            logger.info(
                f"Starting synchronization from {window.start.isoformat()} "
                f"to {window.end.isoformat()}"
            )

            primary = self._fetcher.fetch(primary_id, window.start, window.end)
            remote = self._fetcher.fetch(remote_id, window.start, window.end)

            now = self._clock()
            result.expired_removed += self._expiry.reconcile(primary.expired, remote_id, now)
            result.expired_removed += self._expiry.reconcile(remote.expired, primary_id, now)

            result.obsolete_removed += self._obsolescence.reconcile(
                primary.active, remote.active, remote_id
            )
            result.obsolete_removed += self._obsolescence.reconcile(
                remote.active, primary.active, primary_id
            )

            now = self._clock()
            result.created += self._creation.reconcile(
                remote.active, self._primary_calendar, remote_id, primary_id,
                detailed_title=False, now=now
            )
            result.created += self._creation.reconcile(
                primary.active, self._remote_calendar, primary_id, remote_id,
                detailed_title=True, now=now
            )
        except Exception as e:
            logger.error(
                f"Synchronization error for calendars {primary_id} and {remote_id}: {e}",
                exc_info=True
            )
            raise

        result.completed_at = self._clock()
        logger.info(
            f"Synchronization complete: {result.summary()} "
            f"({time.perf_counter() - start:.2f}s)"
        )
        return result

    def remove_blocking_events(self) -> SyncResult:
        """
        Delete every placeholder either calendar holds for the other.

        Expiry and obsolescence are ignored; this undoes all effects of
        previous passes within the reconciliation window.

        Returns:
            SyncResult with the count of removed placeholders
        """
        start = time.perf_counter()
        result = SyncResult(started_at=self._clock())
        primary_id = self.primary_calendar_id
        remote_id = self.remote_calendar_id

        try:
            window = self._window()
            primary = self._fetcher.fetch(primary_id, window.start, window.end)
            remote = self._fetcher.fetch(remote_id, window.start, window.end)

            result.removed += self._remove_placeholders(primary.all_events, remote_id, primary_id)
            result.removed += self._remove_placeholders(remote.all_events, primary_id, remote_id)
        except Exception as e:
            logger.error(
                f"Teardown error for calendars {primary_id} and {remote_id}: {e}",
                exc_info=True
            )
            raise

        result.completed_at = self._clock()
        logger.info(
            f"Removed all blocking events: {result.removed} "
            f"({time.perf_counter() - start:.2f}s)"
        )
        return result

    def _window(self) -> TimeWindow:
        return TimeWindow.around(self._clock(), self._look_back, self._look_ahead)

    def _remove_placeholders(self, events: List[CalendarEvent], source_calendar_id: str,
                             calendar_id: str) -> int:
        removed = 0
        for event in events:
            if provenance.belongs_to(event, source_calendar_id):
                event.delete()
                removed += 1

        logger.info(f"Removed {removed} blocking events from calendar {calendar_id}")
        return removed
