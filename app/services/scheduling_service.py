from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
import logging
from typing import TypeVar

from fastapi import HTTPException, status

from app.core.config import Settings, get_settings
from app.schemas.availability import (
    WEEKDAY_BY_INDEX,
    AvailabilityMutationResponse,
    AvailabilitySlotCreateRequest,
    AvailabilitySlotDeleteRequest,
    AvailabilitySlotUpdateRequest,
)
from app.schemas.bookings import (
    BookingTimeValidationRequest,
    BookingTimeValidationResponse,
    CancellationPolicyResponse,
    CreateBookingRequest,
    RescheduleBookingRequest,
)
from app.schemas.scheduling import (
    AvailabilitySlot,
    AvailableSlotsResponse,
    Booking,
    CandidateSlot,
    CalendarViewResponse,
    Mentor,
    ViewerRole,
)
from app.services.availability_expander import expand_availability
from app.services.booking_conflicts import (
    AvailabilityValidationError,
    BookingValidationError,
    cancellation_policy,
    filter_available_slots,
    validate_availability_slot,
    validate_booking_request,
    validate_booking_time,
    validate_reschedulable,
)
from app.services.calendar_projector import project_calendar, week_days
from app.services.clock import Clock, SystemClock
from app.services.marketplace_api_client import MarketplaceApiClient, MarketplaceApiError
from app.services.timezone_resolver import resolve_user_timezone

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SchedulingService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        api_client: MarketplaceApiClient | None = None,
        clock: Clock | None = None,
        access_token: str = "",
    ) -> None:
        self.settings = settings or get_settings()
        self.api_client = api_client or MarketplaceApiClient.from_settings(
            self.settings,
            access_token=access_token,
        )
        self.clock = clock or SystemClock()

    def list_available_slots(
        self,
        mentor_id: str,
        *,
        horizon_days: int | None = None,
    ) -> AvailableSlotsResponse:
        horizon = self._resolve_horizon(horizon_days)
        mentor = self._load_mentor(mentor_id)
        bookings = self._call(lambda: self.api_client.get_mentor_upcoming_bookings(mentor.id))
        mentor_timezone = self._mentor_timezone(mentor)
        slots = self._available_slots(mentor, bookings, mentor_timezone, horizon)
        return AvailableSlotsResponse(
            mentor_id=mentor.id,
            mentor_timezone=mentor_timezone,
            horizon_days=horizon,
            items=slots,
        )

    def get_calendar(
        self,
        mentor_id: str,
        *,
        viewer_role: ViewerRole,
        display_timezone: str | None = None,
        horizon_days: int | None = None,
        week_of: datetime | None = None,
    ) -> CalendarViewResponse:
        horizon = self._resolve_horizon(horizon_days)
        mentor = self._load_mentor(mentor_id)
        bookings = self._call(lambda: self.api_client.get_bookings(mentor.id))
        mentor_timezone = self._mentor_timezone(mentor)
        viewer_timezone = (display_timezone or "").strip() or mentor_timezone

        slots = self._available_slots(mentor, bookings, mentor_timezone, horizon)
        # Mentees only see open slots, never other mentees' lessons.
        visible_bookings = bookings if viewer_role == "mentor" else []
        index = project_calendar(
            available_slots=slots,
            bookings=visible_bookings,
            viewer_role=viewer_role,
            display_timezone=viewer_timezone,
        )
        return CalendarViewResponse(
            mentor_id=mentor.id,
            display_timezone=viewer_timezone,
            viewer_role=viewer_role,
            week_days=week_days(week_of or self.clock.now(), viewer_timezone),
            events=index.events,
            index=index.as_labels(),
        )

    def validate_booking_time(self, payload: BookingTimeValidationRequest) -> BookingTimeValidationResponse:
        mentor = self._load_mentor(payload.mentor_id)
        self._check_booking_time(
            mentor,
            payload.start_time,
            payload.duration,
            exclude_booking_id=payload.exclude_booking_id,
        )
        return BookingTimeValidationResponse(
            mentor_id=mentor.id,
            start_time=payload.start_time,
            end_time=payload.start_time + timedelta(minutes=payload.duration),
        )

    def create_booking(self, payload: CreateBookingRequest) -> Booking:
        try:
            validate_booking_request(
                mentor_id=payload.mentor_id,
                mentee_id=payload.mentee_id,
                cost=payload.cost,
            )
        except BookingValidationError as exc:
            raise self._validation_failed(exc) from exc

        mentor = self._load_mentor(payload.mentor_id)
        self._check_booking_time(mentor, payload.start_time, payload.duration)
        booking = self._call(lambda: self.api_client.create_one_time_booking(payload))
        logger.info(
            "Booking created booking_id=%s mentor_id=%s start_time=%s",
            booking.id,
            booking.mentor_id,
            booking.start_time.isoformat(),
        )
        return booking

    def reschedule_booking(self, booking_id: str, payload: RescheduleBookingRequest) -> Booking:
        booking = self._load_booking(booking_id)
        try:
            validate_reschedulable(booking)
        except BookingValidationError as exc:
            raise self._validation_failed(exc) from exc

        mentor = self._load_mentor(booking.mentor_id)
        duration = payload.duration or int((booking.end_time - booking.start_time).total_seconds() // 60)
        self._check_booking_time(
            mentor,
            payload.start_time,
            duration,
            exclude_booking_id=booking.id,
        )
        updated = self._call(
            lambda: self.api_client.reschedule_booking(booking.id, payload.start_time.isoformat()),
        )
        logger.info(
            "Booking rescheduled booking_id=%s from=%s to=%s",
            booking.id,
            booking.start_time.isoformat(),
            updated.start_time.isoformat(),
        )
        return updated

    def get_cancellation_policy(self, booking_id: str) -> CancellationPolicyResponse:
        booking = self._load_booking(booking_id)
        policy = cancellation_policy(
            booking,
            now=self.clock.now(),
            notice_hours=self.settings.cancellation_notice_hours,
        )
        return CancellationPolicyResponse(
            booking_id=booking.id,
            can_cancel=policy.can_cancel,
            minutes_until_start=policy.minutes_until_start,
            notice_hours=policy.notice_hours,
        )

    def add_availability(self, mentor_id: str, payload: AvailabilitySlotCreateRequest) -> AvailabilitySlot:
        mentor = self._load_mentor(mentor_id)
        candidate = AvailabilitySlot.model_validate(payload.model_dump())
        self._check_availability(mentor, candidate)
        return self._call(lambda: self.api_client.add_availability(mentor.id, payload))

    def update_availability(
        self,
        mentor_id: str,
        slot_id: str,
        payload: AvailabilitySlotUpdateRequest,
    ) -> AvailabilitySlot:
        mentor = self._load_mentor(mentor_id)
        current = next((slot for slot in mentor.availability if slot.id == slot_id), None)
        if current is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Availability slot {slot_id} not found.",
            )
        merged = current.model_copy(update=payload.model_dump(exclude_none=True))
        candidate = AvailabilitySlot.model_validate(merged.model_dump())
        self._check_availability(mentor, candidate, exclude_slot_id=slot_id)
        return self._call(lambda: self.api_client.update_availability(mentor.id, slot_id, payload))

    def delete_availability(self, mentor_id: str, slot_id: str) -> AvailabilityMutationResponse:
        self._call(lambda: self.api_client.delete_availability(mentor_id, slot_id))
        return AvailabilityMutationResponse(mentor_id=mentor_id, deleted=True, slot_id=slot_id)

    def delete_availability_slot(
        self,
        mentor_id: str,
        payload: AvailabilitySlotDeleteRequest,
    ) -> AvailabilityMutationResponse:
        logger.info(
            "Deleting generated slot mentor_id=%s day=%s range_start=%s slot_start=%s",
            mentor_id,
            WEEKDAY_BY_INDEX[payload.day_of_week],
            payload.range_start_time,
            payload.specific_slot_start_time,
        )
        self._call(
            lambda: self.api_client.delete_availability_slot(
                mentor_id,
                payload.day_of_week,
                payload.range_start_time,
                payload.specific_slot_start_time,
            ),
        )
        return AvailabilityMutationResponse(mentor_id=mentor_id, deleted=True)

    def _available_slots(
        self,
        mentor: Mentor,
        bookings: list[Booking],
        mentor_timezone: str,
        horizon_days: int,
    ) -> list[CandidateSlot]:
        candidates = expand_availability(
            mentor.availability,
            mentor_timezone,
            horizon_days=horizon_days,
            now=self.clock.now(),
        )
        mentor_bookings = [booking for booking in bookings if booking.mentor_id == mentor.id]
        return filter_available_slots(
            candidates,
            mentor_bookings,
            tolerance=timedelta(seconds=self.settings.booking_match_tolerance_seconds),
        )

    def _check_booking_time(
        self,
        mentor: Mentor,
        start_time: datetime,
        duration: int,
        *,
        exclude_booking_id: str | None = None,
    ) -> None:
        bookings = self._call(lambda: self.api_client.get_bookings(mentor.id))
        try:
            validate_booking_time(
                mentor,
                bookings,
                start_time,
                duration,
                now=self.clock.now(),
                mentor_timezone=self._mentor_timezone(mentor),
                exclude_booking_id=exclude_booking_id,
                min_duration=self.settings.min_booking_duration_minutes,
                max_duration=self.settings.max_booking_duration_minutes,
            )
        except BookingValidationError as exc:
            raise self._validation_failed(exc) from exc

    def _check_availability(
        self,
        mentor: Mentor,
        candidate: AvailabilitySlot,
        *,
        exclude_slot_id: str | None = None,
    ) -> None:
        try:
            validate_availability_slot(
                mentor.availability,
                candidate,
                exclude_slot_id=exclude_slot_id,
            )
        except AvailabilityValidationError as exc:
            raise self._validation_failed(exc) from exc

    def _validation_failed(self, exc: ValueError) -> HTTPException:
        logger.warning("Scheduling validation failed detail=%s", exc)
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )

    def _load_mentor(self, mentor_id: str) -> Mentor:
        mentor = self._call(lambda: self.api_client.get_mentor_by_id(mentor_id))
        if mentor is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Mentor not found.",
            )
        return mentor

    def _load_booking(self, booking_id: str) -> Booking:
        booking = self._call(lambda: self.api_client.get_booking_by_id(booking_id))
        if booking is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Booking not found.",
            )
        return booking

    def _mentor_timezone(self, mentor: Mentor) -> str:
        return resolve_user_timezone(mentor.timezone, mentor.country or "US")

    def _resolve_horizon(self, horizon_days: int | None) -> int:
        horizon = horizon_days or self.settings.default_horizon_days
        if horizon <= 0 or horizon > self.settings.max_horizon_days:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"horizon_days must be between 1 and {self.settings.max_horizon_days}.",
            )
        return horizon

    def _call(self, operation: Callable[[], T]) -> T:
        try:
            return operation()
        except MarketplaceApiError as exc:
            logger.warning(
                "Marketplace API call failed status_code=%s detail=%s",
                exc.status_code,
                exc,
            )
            if exc.status_code == status.HTTP_404_NOT_FOUND:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
