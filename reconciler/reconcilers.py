"""Reconcilers that delete stale placeholders and create missing ones."""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Tuple

from provider.base import CalendarEvent, CalendarHandle
from reconciler import provenance
from reconciler.models import TitleStrategy

logger = logging.getLogger(__name__)

EventKey = Tuple[str, int]

# Padding around a source event when looking up its placeholder. Providers treat
# the lower bound as exclusive on end time and reject empty ranges.
LOOKUP_MARGIN = timedelta(minutes=1)


def event_key(event_id: str, start_time: datetime) -> EventKey:
    """Identity key: event id plus start time in epoch milliseconds."""
    return event_id, int(start_time.timestamp() * 1000)


class ExpiryReconciler:
    """Deletes placeholders whose interval has fully passed."""

    def reconcile(self, expired_events: List[CalendarEvent],
                  expected_source_calendar_id: str, now: datetime) -> int:
        """
        Delete expired placeholders mirrored from the expected calendar.

        Args:
            expired_events: Events of one calendar that ended before now
            expected_source_calendar_id: Id of the counterpart calendar
            now: Current time

        Returns:
            Count of deleted placeholders
        """
        to_delete = [
            event for event in expired_events
            if provenance.belongs_to(event, expected_source_calendar_id)
            and event.end_time < now
        ]

        for event in to_delete:
            event.delete()

        logger.info(
            f"Removed {len(to_delete)} expired blocking events mirrored from "
            f"calendar {expected_source_calendar_id}"
        )
        return len(to_delete)


class ObsolescenceReconciler:
    """Deletes placeholders whose source event vanished or moved."""

    def reconcile(self, active_events: List[CalendarEvent],
                  source_active_events: List[CalendarEvent],
                  source_calendar_id: str) -> int:
        """
        Delete placeholders that no longer match a live source event.

        A placeholder is looked up by its source event id and its own start
        time. When the source was rescheduled the lookup misses, so the
        placeholder is deleted here and recreated at the new time by the
        creation reconciler in the same pass.

        Args:
            active_events: Active events of the calendar holding placeholders
            source_active_events: Active events of the source calendar
            source_calendar_id: Id of the source calendar

        Returns:
            Count of deleted placeholders
        """
        source_lookup: Dict[EventKey, CalendarEvent] = {
            event_key(event.id, event.start_time): event
            for event in source_active_events
        }

        to_delete = []
        for event in active_events:
            origin = provenance.origin_of(event)
            if origin is None or origin.calendar_id != source_calendar_id:
                continue

            source_event = source_lookup.get(event_key(origin.event_id, event.start_time))
            if source_event is None or self._times_differ(event, source_event):
                to_delete.append(event)

        for event in to_delete:
            logger.info(
                f"Deleting obsolete event: {event.title} "
                f"(Start: {event.start_time.isoformat()}, End: {event.end_time.isoformat()})"
            )
            event.delete()

        logger.info(
            f"Removed {len(to_delete)} obsolete blocking events mirrored from "
            f"calendar {source_calendar_id}"
        )
        return len(to_delete)

    def _times_differ(self, placeholder: CalendarEvent, source_event: CalendarEvent) -> bool:
        return (
            placeholder.start_time != source_event.start_time or
            placeholder.end_time != source_event.end_time
        )


class CreationReconciler:
    """Creates placeholders for source events that are not yet mirrored."""

    def __init__(self, title_strategy: TitleStrategy):
        self.title_strategy = title_strategy

    def reconcile(self, source_active_events: List[CalendarEvent],
                  target_calendar: CalendarHandle, source_calendar_id: str,
                  target_calendar_id: str, detailed_title: bool,
                  now: datetime) -> int:
        """
        Mirror every active source event into the target calendar.

        Args:
            source_active_events: Active events of the source calendar
            target_calendar: Calendar receiving the placeholders
            source_calendar_id: Id of the source calendar
            target_calendar_id: Id of the target calendar
            detailed_title: Use the detailed title instead of the generic one
            now: Current time

        Returns:
            Count of created placeholders
        """
        created = 0

        for source_event in source_active_events:
            if source_event.end_time < now:
                continue

            # Placeholders that came from the target would be reflected back
            if provenance.belongs_to(source_event, target_calendar_id):
                logger.debug(
                    f'Skipping event "{source_event.title}" as it is already a blocking event.'
                )
                continue

            if self._is_mirrored(source_event, target_calendar, source_calendar_id):
                continue

            logger.info(
                f"Blocking time in {target_calendar_id} for source event: "
                f"{source_event.title} (Date: {source_event.start_time.date().isoformat()})"
            )
            placeholder = target_calendar.create_event(
                self.title_strategy.title_for(source_event, source_calendar_id, detailed_title),
                source_event.start_time,
                source_event.end_time
            )
            provenance.tag(placeholder, source_event, source_calendar_id)
            created += 1

        logger.info(
            f"Created {created} blocking events in calendar {target_calendar_id} "
            f"from calendar {source_calendar_id}"
        )
        return created

    def _is_mirrored(self, source_event: CalendarEvent, target_calendar: CalendarHandle,
                     source_calendar_id: str) -> bool:
        """Check the target for an existing placeholder of ``source_event``."""
        start = source_event.start_time - LOOKUP_MARGIN
        end = max(source_event.end_time, source_event.start_time) + LOOKUP_MARGIN
        for target_event in target_calendar.get_events(start, end):
            origin = provenance.origin_of(target_event)
            if (origin is not None and
                    origin.calendar_id == source_calendar_id and
                    origin.event_id == source_event.id):
                return True
        return False
