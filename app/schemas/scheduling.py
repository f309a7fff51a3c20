from __future__ import annotations

from datetime import date, datetime
from enum import Enum
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.services.time_utils import WEEKDAY_ABBREVIATIONS, ensure_utc, parse_time_of_day

logger = logging.getLogger(__name__)

Weekday = Literal["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
CalendarEventType = Literal[
    "available",
    "booked",
    "completed",
    "cancelled",
    "no_show",
    "rescheduled",
]
ViewerRole = Literal["mentor", "mentee"]


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class BookingStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"
    DISPUTED = "DISPUTED"
    REFUNDED = "REFUNDED"


class BookingType(str, Enum):
    ONE_TIME = "ONE_TIME"
    SUBSCRIPTION = "SUBSCRIPTION"


ACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.SCHEDULED, BookingStatus.COMPLETED})
NON_BLOCKING_BOOKING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.REFUNDED})


def normalize_weekday(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    cleaned = value.strip()[:3].title()
    if cleaned in WEEKDAY_ABBREVIATIONS:
        return cleaned
    return value


class AvailabilitySlot(ApiModel):
    id: str = ""
    mentor_id: str = ""
    day: Weekday
    start_time: str
    end_time: str | None = None
    duration: int = Field(default=60, ge=0)
    interval: int = Field(default=30, gt=0)
    recurring: bool = True

    @field_validator("day", mode="before")
    @classmethod
    def normalize_day(cls, value: Any) -> Any:
        return normalize_weekday(value)

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        hours, minutes = parse_time_of_day(value)
        return f"{hours:02d}:{minutes:02d}"

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        cleaned = value.strip()
        if cleaned == "24:00":
            return cleaned
        hours, minutes = parse_time_of_day(cleaned)
        return f"{hours:02d}:{minutes:02d}"

    @field_validator("interval", mode="before")
    @classmethod
    def default_interval(cls, value: Any) -> Any:
        if value in (None, "", 0):
            return 30
        return value


class Booking(ApiModel):
    id: str
    mentor_id: str
    mentee_id: str = ""
    mentor_name: str = ""
    mentee_name: str = ""
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    total_cost: float = 0.0
    type: BookingType = BookingType.ONE_TIME

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_instant(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        if value is None:
            return BookingType.ONE_TIME
        if isinstance(value, str):
            cleaned = value.strip().upper()
            if cleaned in {"CREDIT", "ONE-TIME", "ONETIME"}:
                return BookingType.ONE_TIME
            return cleaned
        return value

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def blocks_new_bookings(self) -> bool:
        return self.status not in NON_BLOCKING_BOOKING_STATUSES


class Mentor(ApiModel):
    id: str
    name: str = ""
    country: str | None = None
    timezone: str | None = None
    availability: list[AvailabilitySlot] = Field(default_factory=list)

    @field_validator("availability", mode="before")
    @classmethod
    def parse_availability(cls, value: Any) -> list[AvailabilitySlot]:
        if not isinstance(value, list):
            return []
        slots: list[AvailabilitySlot] = []
        for raw_slot in value:
            try:
                slots.append(AvailabilitySlot.model_validate(raw_slot))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed availability slot slot=%r errors=%s",
                    raw_slot,
                    exc.error_count(),
                )
        return slots


class CandidateSlot(ApiModel):
    start: datetime
    end: datetime
    slot_id: str = ""
    recurring: bool = True


class AvailableSlotsResponse(ApiModel):
    mentor_id: str
    mentor_timezone: str
    horizon_days: int
    items: list[CandidateSlot]


class CalendarEvent(ApiModel):
    id: str
    title: str
    start: datetime
    end: datetime
    type: CalendarEventType
    is_recurring: bool | None = None
    slot_id: str | None = None


class CalendarViewResponse(ApiModel):
    mentor_id: str
    display_timezone: str
    viewer_role: ViewerRole
    week_days: list[date]
    events: list[CalendarEvent]
    index: dict[str, list[str]]
