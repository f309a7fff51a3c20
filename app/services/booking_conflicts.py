from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
import logging
import math

from app.schemas.scheduling import AvailabilitySlot, Booking, BookingStatus, CandidateSlot, Mentor
from app.services.availability_expander import resolve_window_minutes
from app.services.time_utils import (
    MINUTES_PER_DAY,
    WEEKDAY_ABBREVIATIONS,
    convert_timezone,
    ensure_utc,
    format_in_timezone,
    is_valid_timezone,
    time_str_to_minutes,
)

logger = logging.getLogger(__name__)

DEFAULT_MATCH_TOLERANCE = timedelta(seconds=1)
MIN_BOOKING_DURATION_MINUTES = 30
MAX_BOOKING_DURATION_MINUTES = 180
MAX_BOOKING_COST = Decimal("1000000")
MINUTES_PER_WEEK = 7 * MINUTES_PER_DAY
RESCHEDULABLE_BOOKING_STATUSES = frozenset({BookingStatus.SCHEDULED, BookingStatus.RESCHEDULED})


class BookingValidationError(ValueError):
    pass


class AvailabilityValidationError(ValueError):
    pass


@dataclass(frozen=True)
class CancellationPolicy:
    can_cancel: bool
    minutes_until_start: int
    notice_hours: float


def filter_available_slots(
    candidates: Iterable[CandidateSlot],
    bookings: Iterable[Booking] | None,
    *,
    tolerance: timedelta = DEFAULT_MATCH_TOLERANCE,
) -> list[CandidateSlot]:
    active_starts = [
        booking.start_time
        for booking in (bookings or [])
        if isinstance(booking, Booking) and booking.is_active
    ]
    if not active_starts:
        return list(candidates)

    available: list[CandidateSlot] = []
    for candidate in candidates:
        if any(abs(candidate.start - booked_start) <= tolerance for booked_start in active_starts):
            continue
        available.append(candidate)
    logger.debug(
        "Filtered booked slots active_bookings=%s remaining_slots=%s",
        len(active_starts),
        len(available),
    )
    return available


def validate_booking_time(
    mentor: Mentor,
    bookings: Sequence[Booking],
    start_time: datetime,
    duration: int,
    *,
    now: datetime,
    mentor_timezone: str,
    exclude_booking_id: str | None = None,
    min_duration: int = MIN_BOOKING_DURATION_MINUTES,
    max_duration: int = MAX_BOOKING_DURATION_MINUTES,
) -> None:
    """Raise ``BookingValidationError`` unless ``mentor`` can take the booking.

    This is the authoritative gate before creating or rescheduling a booking;
    slot expansion only feeds the optimistic display path.
    """
    start = ensure_utc(start_time)
    if start <= ensure_utc(now):
        raise BookingValidationError("Booking time must be in the future")

    if duration < min_duration or duration > max_duration:
        raise BookingValidationError(
            f"Booking duration must be between {min_duration} and {max_duration} minutes",
        )

    end = start + timedelta(minutes=duration)
    for booking in bookings:
        if booking.mentor_id != mentor.id:
            continue
        if exclude_booking_id and booking.id == exclude_booking_id:
            continue
        if not booking.blocks_new_bookings:
            continue
        if start < booking.end_time and end > booking.start_time:
            if is_valid_timezone(mentor_timezone):
                conflict_label = format_in_timezone(booking.start_time, mentor_timezone, "%Y-%m-%d %H:%M %Z")
            else:
                conflict_label = booking.start_time.isoformat()
            raise BookingValidationError(
                f"Mentor is not available at this time. Conflicting booking: {conflict_label}",
            )

    if not mentor.availability:
        return

    requested = convert_timezone(start, mentor_timezone)
    if not any(_slot_covers(slot, requested.weekday, requested.minute_of_day) for slot in mentor.availability):
        raise BookingValidationError(
            f"Mentor is not available on {requested.weekday} at {requested.time_str}. "
            "Please check their availability schedule.",
        )


def _slot_covers(slot: AvailabilitySlot, weekday: str, minute_of_day: int) -> bool:
    try:
        slot_start = time_str_to_minutes(slot.start_time)
        window = resolve_window_minutes(slot)
    except ValueError:
        return False
    if window <= 0:
        return False

    slot_end = slot_start + window
    if slot.day == weekday and slot_start <= minute_of_day < min(slot_end, MINUTES_PER_DAY):
        return True
    if slot_end > MINUTES_PER_DAY:
        next_day = WEEKDAY_ABBREVIATIONS[(WEEKDAY_ABBREVIATIONS.index(slot.day) + 1) % 7]
        return weekday == next_day and minute_of_day < slot_end - MINUTES_PER_DAY
    return False


def validate_availability_slot(
    existing: Iterable[AvailabilitySlot],
    candidate: AvailabilitySlot,
    *,
    exclude_slot_id: str | None = None,
) -> None:
    new_start = time_str_to_minutes(candidate.start_time)
    new_end = new_start + resolve_window_minutes(candidate)
    if new_end <= new_start:
        raise AvailabilityValidationError("Availability slot must span at least one minute")
    if candidate.interval > new_end - new_start:
        raise AvailabilityValidationError(
            f"Availability slot of {new_end - new_start} minutes is shorter than its "
            f"{candidate.interval} minute interval",
        )

    # Ranges are compared as minutes of the week so a range running past
    # midnight also collides with the next day's ranges (Sun wraps to Mon).
    week_start = _day_offset(candidate.day) + new_start
    week_end = week_start + (new_end - new_start)
    for slot in existing:
        if exclude_slot_id and slot.id == exclude_slot_id:
            continue
        slot_start = time_str_to_minutes(slot.start_time)
        slot_window = resolve_window_minutes(slot)
        slot_week_start = _day_offset(slot.day) + slot_start
        slot_week_end = slot_week_start + slot_window
        for shift in (-MINUTES_PER_WEEK, 0, MINUTES_PER_WEEK):
            if week_start < slot_week_end + shift and week_end > slot_week_start + shift:
                raise AvailabilityValidationError(
                    "Availability slot overlaps with existing slot: "
                    f"{slot.day} {slot.start_time} ({slot_window} min)",
                )


def _day_offset(day: str) -> int:
    return WEEKDAY_ABBREVIATIONS.index(day) * MINUTES_PER_DAY


def validate_reschedulable(booking: Booking) -> None:
    if booking.status not in RESCHEDULABLE_BOOKING_STATUSES:
        raise BookingValidationError(f"Cannot reschedule booking with status: {booking.status.value}")


def validate_booking_request(*, mentor_id: str, mentee_id: str, cost: float) -> None:
    if not mentor_id or not mentee_id:
        raise BookingValidationError("Mentee ID and Mentor ID are required")
    if mentor_id == mentee_id:
        raise BookingValidationError("Cannot book a lesson with yourself")
    validate_credit_amount(cost, "booking")


def validate_credit_amount(amount: float, operation: str) -> None:
    if not math.isfinite(amount):
        raise BookingValidationError(f"Invalid amount: {amount}")
    if amount < 0:
        raise BookingValidationError(f"Amount cannot be negative for {operation}")
    if amount == 0:
        raise BookingValidationError(f"Amount must be greater than 0 for {operation}")

    try:
        decimal_amount = Decimal(str(amount))
    except InvalidOperation as exc:
        raise BookingValidationError(f"Invalid amount: {amount}") from exc
    if decimal_amount > MAX_BOOKING_COST:
        raise BookingValidationError("Amount exceeds maximum limit (1,000,000 credits)")
    if decimal_amount.as_tuple().exponent < -2:
        raise BookingValidationError("Amount cannot have more than 2 decimal places")


def cancellation_policy(booking: Booking, *, now: datetime, notice_hours: float = 2.0) -> CancellationPolicy:
    remaining = booking.start_time - ensure_utc(now)
    return CancellationPolicy(
        can_cancel=remaining >= timedelta(hours=notice_hours),
        minutes_until_start=math.floor(remaining.total_seconds() / 60),
        notice_hours=notice_hours,
    )
