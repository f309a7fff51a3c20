from __future__ import annotations

import json
import logging
from typing import Any
from urllib import error, parse, request

from pydantic import ValidationError

from app.core.config import Settings
from app.schemas.availability import (
    WEEKDAY_BY_INDEX,
    AvailabilitySlotCreateRequest,
    AvailabilitySlotUpdateRequest,
)
from app.schemas.bookings import CreateBookingRequest
from app.schemas.scheduling import AvailabilitySlot, Booking, Mentor

logger = logging.getLogger(__name__)


class MarketplaceApiError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MarketplaceApiClient:
    """JSON client for the remote marketplace REST API.

    Persistence, payments and server-side booking validation all live behind
    this API; responses are validated into typed models before they reach
    the scheduling core.
    """

    def __init__(
        self,
        *,
        api_url: str,
        access_token: str = "",
        timeout_seconds: float = 10.0,
        user_agent: str = "MentorSchedulingBackend/1.0",
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent

    @classmethod
    def from_settings(cls, settings: Settings, *, access_token: str = "") -> MarketplaceApiClient:
        return cls(
            api_url=settings.marketplace_api_url,
            access_token=access_token,
            timeout_seconds=settings.marketplace_api_timeout_seconds,
            user_agent=settings.marketplace_api_user_agent,
        )

    def get_mentor_by_id(self, mentor_id: str) -> Mentor | None:
        try:
            payload = self._request_json("GET", f"/mentors/{_quote(mentor_id)}")
        except MarketplaceApiError as exc:
            if exc.status_code == 404:
                return None
            raise
        if payload is None:
            return None
        return self._parse_model(Mentor, _unwrap(payload), "mentor")

    def get_bookings(self, mentor_id: str | None = None) -> list[Booking]:
        path = "/bookings"
        if mentor_id:
            path = f"{path}?{parse.urlencode({'mentorId': mentor_id})}"
        return self._parse_bookings(self._request_json("GET", path))

    def get_mentor_upcoming_bookings(self, mentor_id: str) -> list[Booking]:
        payload = self._request_json("GET", f"/mentors/{_quote(mentor_id)}/bookings/upcoming")
        return self._parse_bookings(payload)

    def get_booking_by_id(self, booking_id: str) -> Booking | None:
        try:
            payload = self._request_json("GET", f"/bookings/{_quote(booking_id)}")
        except MarketplaceApiError as exc:
            if exc.status_code == 404:
                return None
            raise
        if payload is None:
            return None
        return self._parse_model(Booking, _unwrap(payload), "booking")

    def create_one_time_booking(self, booking_request: CreateBookingRequest) -> Booking:
        payload = self._request_json(
            "POST",
            "/bookings/one-time",
            payload=booking_request.model_dump(by_alias=True, mode="json"),
        )
        return self._parse_model(Booking, _unwrap(payload), "booking")

    def reschedule_booking(self, booking_id: str, new_start_time: str) -> Booking:
        payload = self._request_json(
            "POST",
            f"/bookings/{_quote(booking_id)}/reschedule",
            payload={"startTime": new_start_time},
        )
        return self._parse_model(Booking, _unwrap(payload), "booking")

    def add_availability(
        self,
        mentor_id: str,
        slot: AvailabilitySlotCreateRequest,
    ) -> AvailabilitySlot:
        payload = self._request_json(
            "POST",
            f"/mentors/{_quote(mentor_id)}/availability",
            payload=slot.model_dump(by_alias=True, mode="json"),
        )
        return self._parse_model(AvailabilitySlot, _unwrap(payload), "availability slot")

    def update_availability(
        self,
        mentor_id: str,
        slot_id: str,
        updates: AvailabilitySlotUpdateRequest,
    ) -> AvailabilitySlot:
        payload = self._request_json(
            "PATCH",
            f"/mentors/{_quote(mentor_id)}/availability/{_quote(slot_id)}",
            payload=updates.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        return self._parse_model(AvailabilitySlot, _unwrap(payload), "availability slot")

    def delete_availability(self, mentor_id: str, slot_id: str) -> None:
        self._request_json(
            "DELETE",
            f"/mentors/{_quote(mentor_id)}/availability/{_quote(slot_id)}",
        )

    def delete_availability_slot(
        self,
        mentor_id: str,
        day_of_week: int,
        range_start_time: str,
        specific_slot_start_time: str,
    ) -> None:
        if day_of_week not in WEEKDAY_BY_INDEX:
            raise ValueError(f"day_of_week must be between 0 and 6, got {day_of_week}")
        query = parse.urlencode(
            {
                "dayOfWeek": day_of_week,
                "rangeStartTime": range_start_time,
                "specificSlotStartTime": specific_slot_start_time,
            },
        )
        self._request_json(
            "DELETE",
            f"/mentors/{_quote(mentor_id)}/availability/slots?{query}",
        )

    def _parse_bookings(self, payload: Any) -> list[Booking]:
        items = _unwrap(payload)
        if not isinstance(items, list):
            raise MarketplaceApiError("Marketplace API bookings response is not a list.")
        bookings: list[Booking] = []
        for raw_booking in items:
            try:
                bookings.append(Booking.model_validate(raw_booking))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed booking payload id=%s errors=%s",
                    raw_booking.get("id") if isinstance(raw_booking, dict) else None,
                    exc.error_count(),
                )
        return bookings

    def _parse_model(self, model_cls, payload: Any, label: str):  # type: ignore[no-untyped-def]
        if not isinstance(payload, dict):
            raise MarketplaceApiError(f"Marketplace API {label} response is not a JSON object.")
        try:
            return model_cls.model_validate(payload)
        except ValidationError as exc:
            raise MarketplaceApiError(f"Marketplace API returned an invalid {label}: {exc}") from exc

    def _request_json(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        target = f"{self.api_url}{path}"
        raw_payload: bytes | None = None
        if payload is not None:
            raw_payload = json.dumps(payload).encode("utf-8")

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        req = request.Request(target, data=raw_payload, method=method, headers=headers)

        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                response_body = response.read()
        except TimeoutError as exc:
            raise MarketplaceApiError("Marketplace API request timed out.") from exc
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise MarketplaceApiError(
                f"Marketplace API HTTP {exc.code}: {_extract_error_message(body) or 'empty response body'}",
                status_code=exc.code,
            ) from exc
        except error.URLError as exc:
            raise MarketplaceApiError(
                f"Marketplace API connection error: {exc.reason}",
            ) from exc

        if not response_body or not response_body.strip():
            return None
        try:
            return json.loads(response_body.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise MarketplaceApiError("Marketplace API returned invalid JSON.") from exc


def _quote(value: str) -> str:
    return parse.quote(str(value), safe="")


_ENVELOPE_KEYS = frozenset({"data", "success", "message", "meta"})


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload and set(payload) <= _ENVELOPE_KEYS:
        return payload["data"]
    return payload


def _extract_error_message(body: str) -> str:
    if not body:
        return ""
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return body.strip()
    if isinstance(parsed, dict):
        for key in ("message", "detail", "error"):
            value = parsed.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return body.strip()
