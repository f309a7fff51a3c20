from datetime import datetime

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_scheduling_service
from app.schemas.scheduling import AvailableSlotsResponse, CalendarViewResponse, ViewerRole
from app.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/mentors", tags=["scheduling"])


@router.get("/{mentor_id}/slots", response_model=AvailableSlotsResponse)
def get_available_slots(
    mentor_id: str,
    horizon_days: int | None = Query(default=None, ge=1),
    service: SchedulingService = Depends(get_scheduling_service),
) -> AvailableSlotsResponse:
    return service.list_available_slots(mentor_id, horizon_days=horizon_days)


@router.get("/{mentor_id}/calendar", response_model=CalendarViewResponse)
def get_calendar(
    mentor_id: str,
    viewer_role: ViewerRole = Query(default="mentee"),
    display_timezone: str | None = Query(default=None),
    horizon_days: int | None = Query(default=None, ge=1),
    week_of: datetime | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
) -> CalendarViewResponse:
    return service.get_calendar(
        mentor_id,
        viewer_role=viewer_role,
        display_timezone=display_timezone,
        horizon_days=horizon_days,
        week_of=week_of,
    )
