"""Expansion of weekly availability ranges into bookable slot instants.

A mentor declares ranges such as ``Mon 09:00-11:00`` in their own timezone.
For every calendar day of the lookahead horizon (counted in the mentor's
timezone) the matching ranges are cut into ``interval``-minute slots, each
converted to an absolute UTC instant for that specific date.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta
import logging

from app.schemas.scheduling import AvailabilitySlot, CandidateSlot
from app.services.time_utils import (
    MINUTES_PER_DAY,
    WEEKDAY_ABBREVIATIONS,
    convert_timezone,
    create_absolute_date,
    ensure_utc,
    minutes_to_time_str,
    time_str_to_minutes,
)

logger = logging.getLogger(__name__)

DEFAULT_SLOT_INTERVAL_MINUTES = 30


def resolve_window_minutes(slot: AvailabilitySlot) -> int:
    """Length in minutes of the range declared by ``slot``.

    ``end_time`` wins over ``duration``; ranges that cross midnight wrap
    around by a day.
    """
    start_minutes = time_str_to_minutes(slot.start_time)
    if slot.end_time:
        end_minutes = time_str_to_minutes(slot.end_time, allow_end_of_day=True)
    else:
        end_minutes = (start_minutes + slot.duration) % MINUTES_PER_DAY
        if slot.duration and end_minutes == start_minutes:
            return slot.duration

    total_minutes = end_minutes - start_minutes
    if total_minutes < 0:
        total_minutes += MINUTES_PER_DAY
    return total_minutes


def slot_offsets(total_minutes: int, interval: int) -> list[int]:
    if interval <= 0 or total_minutes < interval:
        return []
    return list(range(0, total_minutes - interval + 1, interval))


def expand_availability(
    availability: Iterable[AvailabilitySlot] | None,
    mentor_timezone: str,
    *,
    horizon_days: int,
    now: datetime,
) -> list[CandidateSlot]:
    if not isinstance(availability, (list, tuple)):
        return []
    if horizon_days <= 0:
        return []

    now_utc = ensure_utc(now)
    today_in_mentor_tz = convert_timezone(now_utc, mentor_timezone).calendar_date
    candidates: list[CandidateSlot] = []

    for day_offset in range(horizon_days):
        calendar_day = today_in_mentor_tz + timedelta(days=day_offset)
        day_name = WEEKDAY_ABBREVIATIONS[calendar_day.weekday()]

        for slot in availability:
            if not isinstance(slot, AvailabilitySlot) or slot.day != day_name:
                continue
            try:
                candidates.extend(
                    _expand_range(slot, calendar_day, mentor_timezone, now_utc),
                )
            except ValueError as exc:
                logger.warning(
                    "Skipping availability slot slot_id=%s day=%s error=%s",
                    slot.id,
                    slot.day,
                    exc,
                )

    candidates.sort(key=lambda candidate: candidate.start)
    return candidates


def _expand_range(
    slot: AvailabilitySlot,
    calendar_day: date,
    mentor_timezone: str,
    now_utc: datetime,
) -> list[CandidateSlot]:
    interval = slot.interval or DEFAULT_SLOT_INTERVAL_MINUTES
    start_minutes = time_str_to_minutes(slot.start_time)
    total_minutes = resolve_window_minutes(slot)

    generated: list[CandidateSlot] = []
    for offset in slot_offsets(total_minutes, interval):
        minute_of_range = start_minutes + offset
        slot_day = calendar_day + timedelta(days=minute_of_range // MINUTES_PER_DAY)
        start = create_absolute_date(
            slot_day,
            minutes_to_time_str(minute_of_range),
            mentor_timezone,
        )
        if start < now_utc:
            continue
        generated.append(
            CandidateSlot(
                start=start,
                end=start + timedelta(minutes=interval),
                slot_id=slot.id,
                recurring=slot.recurring,
            ),
        )
    return generated
