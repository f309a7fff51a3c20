from typing import Any

from pydantic import Field, field_validator

from app.schemas.scheduling import ApiModel, Weekday, normalize_weekday
from app.services.time_utils import parse_time_of_day

# Weekday indexes used by the marketplace API.
WEEKDAY_INDEX: dict[str, int] = {
    "Sun": 0,
    "Mon": 1,
    "Tue": 2,
    "Wed": 3,
    "Thu": 4,
    "Fri": 5,
    "Sat": 6,
}
WEEKDAY_BY_INDEX: dict[int, str] = {index: name for name, index in WEEKDAY_INDEX.items()}


def _normalize_time(value: str | None, *, allow_end_of_day: bool = False) -> str | None:
    if value is None or not value.strip():
        return None
    if allow_end_of_day and value.strip() == "24:00":
        return "24:00"
    hours, minutes = parse_time_of_day(value)
    return f"{hours:02d}:{minutes:02d}"


class AvailabilitySlotCreateRequest(ApiModel):
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
        return _normalize_time(value, allow_end_of_day=True)


class AvailabilitySlotUpdateRequest(ApiModel):
    day: Weekday | None = None
    start_time: str | None = None
    end_time: str | None = None
    duration: int | None = Field(default=None, ge=0)
    interval: int | None = Field(default=None, gt=0)
    recurring: bool | None = None

    @field_validator("day", mode="before")
    @classmethod
    def normalize_day(cls, value: Any) -> Any:
        return normalize_weekday(value)

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: str | None) -> str | None:
        return _normalize_time(value)

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, value: str | None) -> str | None:
        return _normalize_time(value, allow_end_of_day=True)


class AvailabilitySlotDeleteRequest(ApiModel):
    day_of_week: int = Field(ge=0, le=6)
    range_start_time: str
    specific_slot_start_time: str

    @field_validator("range_start_time", "specific_slot_start_time")
    @classmethod
    def validate_times(cls, value: str) -> str:
        hours, minutes = parse_time_of_day(value)
        return f"{hours:02d}:{minutes:02d}"


class AvailabilityMutationResponse(ApiModel):
    mentor_id: str
    deleted: bool = False
    slot_id: str | None = None
