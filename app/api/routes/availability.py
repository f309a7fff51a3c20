from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_scheduling_service
from app.schemas.availability import (
    AvailabilityMutationResponse,
    AvailabilitySlotCreateRequest,
    AvailabilitySlotDeleteRequest,
    AvailabilitySlotUpdateRequest,
)
from app.schemas.scheduling import AvailabilitySlot
from app.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/mentors/{mentor_id}/availability", tags=["availability"])


@router.post(
    "",
    response_model=AvailabilitySlot,
    status_code=status.HTTP_201_CREATED,
)
def add_availability(
    mentor_id: str,
    payload: AvailabilitySlotCreateRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> AvailabilitySlot:
    return service.add_availability(mentor_id, payload)


@router.patch("/{slot_id}", response_model=AvailabilitySlot)
def update_availability(
    mentor_id: str,
    slot_id: str,
    payload: AvailabilitySlotUpdateRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> AvailabilitySlot:
    return service.update_availability(mentor_id, slot_id, payload)


@router.delete("/{slot_id}", response_model=AvailabilityMutationResponse)
def delete_availability(
    mentor_id: str,
    slot_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
) -> AvailabilityMutationResponse:
    return service.delete_availability(mentor_id, slot_id)


@router.post("/slots/delete", response_model=AvailabilityMutationResponse)
def delete_availability_slot(
    mentor_id: str,
    payload: AvailabilitySlotDeleteRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> AvailabilityMutationResponse:
    return service.delete_availability_slot(mentor_id, payload)
