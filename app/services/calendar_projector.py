"""Projection of availability and bookings into calendar events.

Events keep absolute ``start``/``end`` instants. Grid placement always goes
through ``convert_timezone`` with the viewer's display timezone, which may
differ from both the mentor's and the mentee's own timezone.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from app.schemas.scheduling import (
    Booking,
    BookingStatus,
    CalendarEvent,
    CandidateSlot,
    ViewerRole,
)
from app.services.time_utils import convert_timezone

CellKey = tuple[int, int, int, int, int]

_STATUS_EVENT_TYPES: dict[BookingStatus, str] = {
    BookingStatus.SCHEDULED: "booked",
    BookingStatus.COMPLETED: "completed",
    BookingStatus.CANCELLED: "cancelled",
    BookingStatus.NO_SHOW: "no_show",
    BookingStatus.RESCHEDULED: "rescheduled",
}


def booking_event_type(status: BookingStatus) -> str | None:
    return _STATUS_EVENT_TYPES.get(status)


def booking_events(bookings: Iterable[Booking], *, viewer_role: ViewerRole) -> list[CalendarEvent]:
    events: list[CalendarEvent] = []
    for booking in bookings:
        event_type = booking_event_type(booking.status)
        if event_type is None:
            continue
        title = booking.mentee_name if viewer_role == "mentor" else booking.mentor_name
        events.append(
            CalendarEvent(
                id=f"booking-{booking.id}",
                title=title or "Booking",
                start=booking.start_time,
                end=booking.end_time,
                type=event_type,
            ),
        )
    return events


def availability_events(candidates: Iterable[CandidateSlot]) -> list[CalendarEvent]:
    return [
        CalendarEvent(
            id=f"avail-{candidate.slot_id}-{int(candidate.start.timestamp() * 1000)}",
            title="Available",
            start=candidate.start,
            end=candidate.end,
            type="available",
            is_recurring=candidate.recurring,
            slot_id=candidate.slot_id or None,
        )
        for candidate in candidates
    ]


def cell_label(key: CellKey) -> str:
    year, month, day, hour, minute = key
    return f"{year:04d}-{month:02d}-{day:02d}T{hour:02d}:{minute:02d}"


@dataclass
class CalendarIndex:
    """Events bucketed by display-timezone start cell.

    Bound to the timezone it was built for; ``for_timezone`` rebuilds it
    instead of reusing cells computed for another timezone.
    """

    display_timezone: str
    events: list[CalendarEvent]
    cells: dict[CellKey, list[CalendarEvent]] = field(default_factory=dict)

    @classmethod
    def build(cls, events: Iterable[CalendarEvent], display_timezone: str) -> CalendarIndex:
        event_list = list(events)
        cells: dict[CellKey, list[CalendarEvent]] = {}
        for event in event_list:
            key = convert_timezone(event.start, display_timezone).cell_key()
            cells.setdefault(key, []).append(event)
        return cls(display_timezone=display_timezone, events=event_list, cells=cells)

    def for_timezone(self, display_timezone: str) -> CalendarIndex:
        if display_timezone == self.display_timezone:
            return self
        return CalendarIndex.build(self.events, display_timezone)

    def lookup(self, year: int, month: int, day: int, hour: int, minute: int = 0) -> list[CalendarEvent]:
        return list(self.cells.get((year, month, day, hour, minute), ()))

    def events_in_hour(self, year: int, month: int, day: int, hour: int) -> list[CalendarEvent]:
        matched: list[CalendarEvent] = []
        for minute in range(60):
            matched.extend(self.cells.get((year, month, day, hour, minute), ()))
        return matched

    def as_labels(self) -> dict[str, list[str]]:
        return {
            cell_label(key): [event.id for event in events]
            for key, events in sorted(self.cells.items())
        }


def week_days(reference: datetime, display_timezone: str) -> list[date]:
    """Monday-first dates of the week containing ``reference`` in ``display_timezone``."""
    reference_date = convert_timezone(reference, display_timezone).calendar_date
    monday = reference_date - timedelta(days=reference_date.weekday())
    return [monday + timedelta(days=offset) for offset in range(7)]


def is_today(day: date, *, now: datetime, display_timezone: str) -> bool:
    return convert_timezone(now, display_timezone).calendar_date == day


def project_calendar(
    *,
    available_slots: Iterable[CandidateSlot],
    bookings: Iterable[Booking],
    viewer_role: ViewerRole,
    display_timezone: str,
) -> CalendarIndex:
    events = booking_events(bookings, viewer_role=viewer_role) + availability_events(available_slots)
    events.sort(key=lambda event: event.start)
    return CalendarIndex.build(events, display_timezone)
