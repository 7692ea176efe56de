"""Provenance tags that mark an event as a mirrored placeholder."""
import logging
from typing import Optional

from provider.base import CalendarEvent
from reconciler.models import Origin

logger = logging.getLogger(__name__)

PLACEHOLDER_TAG = "isPlaceholder"
SOURCE_EVENT_ID_TAG = "sourceEventId"
SOURCE_CALENDAR_ID_TAG = "sourceCalendarId"
PLACEHOLDER_VALUE = "true"


def is_placeholder(event: CalendarEvent) -> bool:
    """
    Check whether an event was created by the synchronizer.

    Args:
        event: Event to inspect

    Returns:
        True if the placeholder marker is set and the source calendar is known
    """
    if event.get_tag(PLACEHOLDER_TAG) != PLACEHOLDER_VALUE:
        return False
    return bool(event.get_tag(SOURCE_CALENDAR_ID_TAG))


def origin_of(event: CalendarEvent) -> Optional[Origin]:
    """Return the source of a placeholder, or None for a genuine event."""
    if not is_placeholder(event):
        return None
    return Origin(
        event_id=event.get_tag(SOURCE_EVENT_ID_TAG) or "",
        calendar_id=event.get_tag(SOURCE_CALENDAR_ID_TAG)
    )


def belongs_to(event: CalendarEvent, source_calendar_id: str) -> bool:
    """True if ``event`` is a placeholder mirrored from ``source_calendar_id``."""
    origin = origin_of(event)
    return origin is not None and origin.calendar_id == source_calendar_id


def tag(event: CalendarEvent, source_event: CalendarEvent, source_calendar_id: str) -> None:
    """
    Mark ``event`` as the placeholder of ``source_event``.

    Tags that already hold the wanted value are left alone, so tagging an
    event twice performs no further provider writes.

    Args:
        event: Placeholder to tag
        source_event: Event the placeholder mirrors
        source_calendar_id: Calendar that owns ``source_event``
    """
    wanted = {
        PLACEHOLDER_TAG: PLACEHOLDER_VALUE,
        SOURCE_EVENT_ID_TAG: source_event.id,
        SOURCE_CALENDAR_ID_TAG: source_calendar_id,
    }
    for key, value in wanted.items():
        if event.get_tag(key) != value:
            event.set_tag(key, value)
    logger.debug(f"Tagged event {event.id} as placeholder of {source_event.id}")
