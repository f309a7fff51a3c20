from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time
import logging
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Index matches datetime.weekday().
WEEKDAY_ABBREVIATIONS: tuple[str, ...] = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MINUTES_PER_DAY = 24 * 60
_TIME_OF_DAY_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")


@dataclass(frozen=True)
class DisplayClock:
    """Wall-clock reading of an instant in one timezone.

    Only meant for reading calendar fields (weekday, hour, minute). It is not
    an instant and carries no offset, so it must never feed back into time
    arithmetic; use ``create_absolute_date`` to go from wall clock to instant.
    """

    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int
    weekday: str
    timezone: str

    @property
    def calendar_date(self) -> date:
        return date(self.year, self.month, self.day)

    @property
    def time_str(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute

    def cell_key(self) -> tuple[int, int, int, int, int]:
        return (self.year, self.month, self.day, self.hour, self.minute)


def get_local_timezone_name() -> str:
    return get_settings().local_timezone


def load_zone(timezone: str | None) -> ZoneInfo | None:
    cleaned = (timezone or "").strip()
    if not cleaned:
        return None
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def is_valid_timezone(timezone: str | None) -> bool:
    return load_zone(timezone) is not None


def _local_zone() -> tuple[ZoneInfo, str]:
    local_name = get_local_timezone_name()
    zone = load_zone(local_name)
    if zone is None:
        logger.warning("Configured local timezone %s is not recognized, using UTC", local_name)
        return ZoneInfo("UTC"), "UTC"
    return zone, local_name


def ensure_utc(instant: datetime) -> datetime:
    """Return ``instant`` as an aware UTC datetime; naive values are read as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def parse_time_of_day(value: str, *, allow_end_of_day: bool = False) -> tuple[int, int]:
    match = _TIME_OF_DAY_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")
    hours = int(match.group(1))
    minutes = int(match.group(2))
    if allow_end_of_day and hours == 24 and minutes == 0:
        # "24:00" closes a range at end of day; counted as 23:59.
        return 23, 59
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours, minutes


def time_str_to_minutes(value: str, *, allow_end_of_day: bool = False) -> int:
    hours, minutes = parse_time_of_day(value, allow_end_of_day=allow_end_of_day)
    return hours * 60 + minutes


def minutes_to_time_str(total_minutes: int) -> str:
    wrapped = total_minutes % MINUTES_PER_DAY
    return f"{wrapped // 60:02d}:{wrapped % 60:02d}"


def convert_timezone(instant: datetime, timezone: str) -> DisplayClock:
    utc_instant = ensure_utc(instant)
    zone = load_zone(timezone)
    zone_name = (timezone or "").strip()
    if zone is None:
        logger.warning("Invalid timezone: %s, falling back to local timezone", timezone)
        zone, zone_name = _local_zone()

    local = utc_instant.astimezone(zone)
    return DisplayClock(
        year=local.year,
        month=local.month,
        day=local.day,
        hour=local.hour,
        minute=local.minute,
        second=local.second,
        weekday=WEEKDAY_ABBREVIATIONS[local.weekday()],
        timezone=zone_name,
    )


def create_absolute_date(base_date: date | datetime, time_str: str, timezone: str) -> datetime:
    """Absolute UTC instant of ``time_str`` on the calendar day of ``base_date`` in ``timezone``.

    The offset is resolved for that specific date, so daylight-saving and
    fractional offsets are honoured. Only the year, month and day of
    ``base_date`` are used.
    """
    hours, minutes = parse_time_of_day(time_str)
    calendar_day = base_date.date() if isinstance(base_date, datetime) else base_date
    naive_local = datetime.combine(calendar_day, time(hours, minutes))

    zone = load_zone(timezone)
    if zone is None:
        logger.error("Error creating absolute date with timezone: %s", timezone)
        zone, _ = _local_zone()

    return naive_local.replace(tzinfo=zone).astimezone(UTC)


def format_in_timezone(instant: datetime, timezone: str, fmt: str = "%Y-%m-%d %H:%M") -> str:
    return ensure_utc(instant).astimezone(ZoneInfo(timezone)).strftime(fmt)
