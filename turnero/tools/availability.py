"""
Calendar gateway contract and an in-memory calendar.

The external calendar is the single source of truth for slot occupancy.
``InMemoryCalendar`` stands in for it in tests and in the console demo;
``GoogleCalendarGateway`` talks to the real thing.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Protocol

from turnero.schemas.booking_schema import TimeRange

logger = logging.getLogger(__name__)


class AvailabilityGateway(Protocol):
    """Free/busy lookup and event creation against one calendar.

    Both calls may be slow and may raise ``UpstreamError``.
    """

    async def is_available(self, time_range: TimeRange) -> bool: ...

    async def create_event(
        self, title: str, time_range: TimeRange, attendee_emails: list[str]
    ) -> str: ...


@dataclass
class CalendarEvent:
    """Event stored by the in-memory calendar."""

    event_id: str
    title: str
    time_range: TimeRange
    attendee_emails: list[str] = field(default_factory=list)


class InMemoryCalendar:
    """Calendar kept in a dict; busy means any overlapping event."""

    def __init__(self) -> None:
        self._events: dict[str, CalendarEvent] = {}

    @property
    def events(self) -> list[CalendarEvent]:
        return list(self._events.values())

    async def is_available(self, time_range: TimeRange) -> bool:
        return not any(e.time_range.overlaps(time_range) for e in self._events.values())

    async def create_event(
        self, title: str, time_range: TimeRange, attendee_emails: list[str]
    ) -> str:
        event_id = f"evt-{uuid.uuid4().hex[:10]}"
        self._events[event_id] = CalendarEvent(
            event_id=event_id,
            title=title,
            time_range=time_range,
            attendee_emails=list(attendee_emails),
        )
        logger.info("Calendar event created: %s '%s' at %s", event_id, title, time_range.start.isoformat())
        return event_id

    def block(self, time_range: TimeRange, title: str = "Ocupado") -> str:
        """Mark a range busy without going through the booking flow."""
        event_id = f"blk-{uuid.uuid4().hex[:10]}"
        self._events[event_id] = CalendarEvent(event_id=event_id, title=title, time_range=time_range)
        return event_id

    def reset(self) -> None:
        """Clear all events. Used by test fixtures for isolation."""
        self._events.clear()
