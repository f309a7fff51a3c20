from datetime import datetime

from pydantic import Field, field_validator

from app.schemas.scheduling import ApiModel
from app.services.time_utils import ensure_utc


class BookingTimeValidationRequest(ApiModel):
    mentor_id: str
    start_time: datetime
    duration: int = 60
    exclude_booking_id: str | None = None

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class BookingTimeValidationResponse(ApiModel):
    valid: bool = True
    mentor_id: str
    start_time: datetime
    end_time: datetime


class CreateBookingRequest(ApiModel):
    mentor_id: str
    mentee_id: str
    start_time: datetime
    duration: int = 60
    cost: float
    use_subscription: bool = False

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class RescheduleBookingRequest(ApiModel):
    start_time: datetime
    duration: int | None = Field(default=None, gt=0)

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class CancellationPolicyResponse(ApiModel):
    booking_id: str
    can_cancel: bool
    minutes_until_start: int
    notice_hours: float
