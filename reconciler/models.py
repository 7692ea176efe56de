"""Data models for free/busy reconciliation."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from provider.base import CalendarEvent


DEFAULT_LOOK_BACK = timedelta(days=7)
DEFAULT_LOOK_AHEAD = timedelta(days=60)
DEFAULT_BLOCKED_TITLE = "Blocked by remote calendar"


@dataclass(frozen=True)
class Origin:
    """Source event a placeholder was mirrored from."""
    event_id: str
    calendar_id: str


@dataclass(frozen=True)
class TimeWindow:
    """Half-open reconciliation window [start, end)."""
    start: datetime
    end: datetime

    @classmethod
    def around(cls, now: datetime, look_back: timedelta,
               look_ahead: timedelta) -> "TimeWindow":
        return cls(start=now - look_back, end=now + look_ahead)


@dataclass
class Snapshot:
    """Events of one calendar, partitioned by whether they have ended."""
    expired: List[CalendarEvent] = field(default_factory=list)
    active: List[CalendarEvent] = field(default_factory=list)

    @property
    def all_events(self) -> List[CalendarEvent]:
        return self.expired + self.active


@dataclass(frozen=True)
class TitleStrategy:
    """
    Titles given to new placeholders.

    Placeholders in the primary calendar only say the slot is taken; those in
    the remote calendar name the source calendar and the original title.
    """
    blocked_title: str = DEFAULT_BLOCKED_TITLE
    detailed_format: str = "{calendar_id}: {title}"

    def title_for(self, source_event: CalendarEvent, source_calendar_id: str,
                  detailed: bool) -> str:
        if not detailed:
            return self.blocked_title
        return self.detailed_format.format(
            calendar_id=source_calendar_id,
            title=source_event.title
        )


@dataclass
class SyncResult:
    """Summary of one synchronization or teardown pass."""
    started_at: datetime
    completed_at: Optional[datetime] = None
    expired_removed: int = 0
    obsolete_removed: int = 0
    created: int = 0
    removed: int = 0

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "expired_removed": self.expired_removed,
            "obsolete_removed": self.obsolete_removed,
            "created": self.created,
            "removed": self.removed,
        }

    def summary(self) -> str:
        """Generate a human-readable summary."""
        return (
            f"{self.created} created, {self.obsolete_removed} obsolete removed, "
            f"{self.expired_removed} expired removed, {self.removed} removed"
        )
