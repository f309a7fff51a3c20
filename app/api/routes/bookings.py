from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_scheduling_service
from app.schemas.bookings import (
    BookingTimeValidationRequest,
    BookingTimeValidationResponse,
    CancellationPolicyResponse,
    CreateBookingRequest,
    RescheduleBookingRequest,
)
from app.schemas.scheduling import Booking
from app.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("/validate", response_model=BookingTimeValidationResponse)
def validate_booking_time(
    payload: BookingTimeValidationRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> BookingTimeValidationResponse:
    return service.validate_booking_time(payload)


@router.post(
    "",
    response_model=Booking,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    payload: CreateBookingRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> Booking:
    return service.create_booking(payload)


@router.post("/{booking_id}/reschedule", response_model=Booking)
def reschedule_booking(
    booking_id: str,
    payload: RescheduleBookingRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> Booking:
    return service.reschedule_booking(booking_id, payload)


@router.get("/{booking_id}/cancellation-policy", response_model=CancellationPolicyResponse)
def get_cancellation_policy(
    booking_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
) -> CancellationPolicyResponse:
    return service.get_cancellation_policy(booking_id)
