from datetime import UTC, datetime, timedelta
import logging

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_scheduling_service
from app.core.config import get_settings
from app.main import app, create_application
from app.schemas.availability import AvailabilitySlotCreateRequest, AvailabilitySlotUpdateRequest
from app.schemas.bookings import CreateBookingRequest
from app.schemas.scheduling import AvailabilitySlot, Booking, Mentor
from app.services.clock import FixedClock
from app.services.marketplace_api_client import MarketplaceApiError
from app.services.scheduling_service import SchedulingService

# Sunday 2026-10-18, noon UTC.
NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


class FakeMarketplaceApiClient:
    def __init__(self) -> None:
        self.mentors = {
            "mentor-1": Mentor.model_validate(
                {
                    "id": "mentor-1",
                    "name": "Aiko",
                    "timezone": "UTC",
                    "availability": [
                        {"id": "s1", "day": "Mon", "startTime": "08:00", "endTime": "12:00", "interval": 30},
                    ],
                },
            ),
        }
        self.bookings = {
            "booking-1": Booking.model_validate(
                {
                    "id": "booking-1",
                    "mentorId": "mentor-1",
                    "menteeId": "mentee-1",
                    "mentorName": "Aiko",
                    "menteeName": "Ben",
                    "startTime": "2026-10-19T08:00:00Z",
                    "endTime": "2026-10-19T09:00:00Z",
                    "status": "SCHEDULED",
                    "totalCost": 25,
                },
            ),
        }
        self.created: list[CreateBookingRequest] = []
        self.deleted_slots: list[tuple[str, int, str, str]] = []
        self.fail_with: MarketplaceApiError | None = None

    def get_mentor_by_id(self, mentor_id: str) -> Mentor | None:
        if self.fail_with:
            raise self.fail_with
        return self.mentors.get(mentor_id)

    def get_bookings(self, mentor_id: str | None = None) -> list[Booking]:
        return [b for b in self.bookings.values() if mentor_id is None or b.mentor_id == mentor_id]

    def get_mentor_upcoming_bookings(self, mentor_id: str) -> list[Booking]:
        return [b for b in self.get_bookings(mentor_id) if b.start_time >= NOW]

    def get_booking_by_id(self, booking_id: str) -> Booking | None:
        return self.bookings.get(booking_id)

    def create_one_time_booking(self, booking_request: CreateBookingRequest) -> Booking:
        self.created.append(booking_request)
        return Booking(
            id="booking-2",
            mentor_id=booking_request.mentor_id,
            mentee_id=booking_request.mentee_id,
            start_time=booking_request.start_time,
            end_time=booking_request.start_time + timedelta(minutes=booking_request.duration),
            status="SCHEDULED",
            total_cost=booking_request.cost,
        )

    def reschedule_booking(self, booking_id: str, new_start_time: str) -> Booking:
        booking = self.bookings[booking_id]
        start = datetime.fromisoformat(new_start_time)
        return booking.model_copy(
            update={"start_time": start, "end_time": start + (booking.end_time - booking.start_time)},
        )

    def add_availability(self, mentor_id: str, slot: AvailabilitySlotCreateRequest) -> AvailabilitySlot:
        return AvailabilitySlot.model_validate({**slot.model_dump(), "id": "s2", "mentor_id": mentor_id})

    def update_availability(
        self,
        mentor_id: str,
        slot_id: str,
        updates: AvailabilitySlotUpdateRequest,
    ) -> AvailabilitySlot:
        current = next(slot for slot in self.mentors[mentor_id].availability if slot.id == slot_id)
        return current.model_copy(update=updates.model_dump(exclude_none=True))

    def delete_availability(self, mentor_id: str, slot_id: str) -> None:
        return None

    def delete_availability_slot(
        self,
        mentor_id: str,
        day_of_week: int,
        range_start_time: str,
        specific_slot_start_time: str,
    ) -> None:
        self.deleted_slots.append((mentor_id, day_of_week, range_start_time, specific_slot_start_time))


@pytest.fixture
def api_client() -> FakeMarketplaceApiClient:
    return FakeMarketplaceApiClient()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, api_client: FakeMarketplaceApiClient) -> TestClient:
    monkeypatch.setenv("LOCAL_TIMEZONE", "UTC")
    get_settings.cache_clear()
    app.dependency_overrides[get_scheduling_service] = lambda: SchedulingService(
        get_settings(),
        api_client=api_client,  # type: ignore[arg-type]
        clock=FixedClock(NOW),
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
    get_settings.cache_clear()


def test_available_slots_exclude_booked_start(client: TestClient) -> None:
    response = client.get("/api/mentors/mentor-1/slots", params={"horizon_days": 7})

    assert response.status_code == 200
    data = response.json()
    assert data["mentorTimezone"] == "UTC"
    assert data["horizonDays"] == 7
    starts = [item["start"] for item in data["items"]]
    assert len(starts) == 7
    assert not any(start.startswith("2026-10-19T08:00:00") for start in starts)
    assert starts[0].startswith("2026-10-19T08:30:00")


def test_versioned_prefix_serves_the_same_routes(client: TestClient) -> None:
    response = client.get("/api/v1/mentors/mentor-1/slots", params={"horizon_days": 7})

    assert response.status_code == 200
    assert len(response.json()["items"]) == 7


def test_unknown_mentor_returns_404(client: TestClient) -> None:
    response = client.get("/api/mentors/missing/slots")

    assert response.status_code == 404
    assert response.json()["detail"] == "Mentor not found."


def test_horizon_above_maximum_is_rejected(client: TestClient) -> None:
    response = client.get("/api/mentors/mentor-1/slots", params={"horizon_days": 90})

    assert response.status_code == 422


def test_marketplace_failure_maps_to_bad_gateway(
    client: TestClient,
    api_client: FakeMarketplaceApiClient,
) -> None:
    api_client.fail_with = MarketplaceApiError("Marketplace API HTTP 500: boom", status_code=500)

    response = client.get("/api/mentors/mentor-1/slots")

    assert response.status_code == 502
    assert "boom" in response.json()["detail"]


def test_mentor_calendar_shows_bookings_and_mentee_calendar_hides_them(client: TestClient) -> None:
    mentor_view = client.get(
        "/api/mentors/mentor-1/calendar",
        params={"viewer_role": "mentor", "horizon_days": 7},
    )
    mentee_view = client.get(
        "/api/mentors/mentor-1/calendar",
        params={"viewer_role": "mentee", "horizon_days": 7},
    )

    assert mentor_view.status_code == 200
    assert mentee_view.status_code == 200
    mentor_data = mentor_view.json()
    mentee_data = mentee_view.json()

    booked = [event for event in mentor_data["events"] if event["type"] == "booked"]
    assert [event["title"] for event in booked] == ["Ben"]
    assert mentor_data["index"]["2026-10-19T08:00"] == ["booking-booking-1"]
    assert mentor_data["displayTimezone"] == "UTC"
    assert mentor_data["weekDays"][0] == "2026-10-12"

    assert {event["type"] for event in mentee_data["events"]} == {"available"}
    assert len(mentee_data["events"]) == 7


def test_calendar_is_projected_into_display_timezone(client: TestClient) -> None:
    response = client.get(
        "/api/mentors/mentor-1/calendar",
        params={"display_timezone": "Asia/Tokyo", "horizon_days": 7},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["displayTimezone"] == "Asia/Tokyo"
    assert "2026-10-19T17:30" in data["index"]


def test_validate_booking_reports_conflict(client: TestClient) -> None:
    response = client.post(
        "/api/bookings/validate",
        json={"mentorId": "mentor-1", "startTime": "2026-10-19T08:00:00Z", "duration": 60},
    )

    assert response.status_code == 422
    assert "Conflicting booking" in response.json()["detail"]


def test_validate_booking_accepts_free_time(client: TestClient) -> None:
    response = client.post(
        "/api/bookings/validate",
        json={"mentorId": "mentor-1", "startTime": "2026-10-19T09:00:00Z", "duration": 60},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["endTime"].startswith("2026-10-19T10:00:00")


def test_create_booking_forwards_validated_request(
    client: TestClient,
    api_client: FakeMarketplaceApiClient,
) -> None:
    response = client.post(
        "/api/bookings",
        json={
            "mentorId": "mentor-1",
            "menteeId": "mentee-2",
            "startTime": "2026-10-19T10:00:00Z",
            "duration": 60,
            "cost": 25,
        },
    )

    assert response.status_code == 201
    assert response.json()["id"] == "booking-2"
    assert [request.mentee_id for request in api_client.created] == ["mentee-2"]


def test_create_booking_with_yourself_is_rejected(
    client: TestClient,
    api_client: FakeMarketplaceApiClient,
) -> None:
    response = client.post(
        "/api/bookings",
        json={
            "mentorId": "mentor-1",
            "menteeId": "mentor-1",
            "startTime": "2026-10-19T10:00:00Z",
            "cost": 25,
        },
    )

    assert response.status_code == 422
    assert response.json()["detail"] == "Cannot book a lesson with yourself"
    assert api_client.created == []


def test_reschedule_ignores_the_booking_being_moved(client: TestClient) -> None:
    response = client.post(
        "/api/bookings/booking-1/reschedule",
        json={"startTime": "2026-10-19T08:30:00Z", "duration": 60},
    )

    assert response.status_code == 200
    assert response.json()["startTime"].startswith("2026-10-19T08:30:00")


def test_reschedule_outside_availability_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/bookings/booking-1/reschedule",
        json={"startTime": "2026-10-20T08:00:00Z"},
    )

    assert response.status_code == 422
    assert "not available on Tue" in response.json()["detail"]


def test_cancellation_policy(client: TestClient) -> None:
    response = client.get("/api/bookings/booking-1/cancellation-policy")

    assert response.status_code == 200
    data = response.json()
    assert data["canCancel"] is True
    assert data["minutesUntilStart"] == 20 * 60


def test_add_availability_rejects_overlap(client: TestClient) -> None:
    response = client.post(
        "/api/mentors/mentor-1/availability",
        json={"day": "Monday", "startTime": "09:00", "duration": 60},
    )

    assert response.status_code == 422
    assert "overlaps with existing slot" in response.json()["detail"]


def test_add_availability_creates_slot(client: TestClient) -> None:
    response = client.post(
        "/api/mentors/mentor-1/availability",
        json={"day": "Tue", "startTime": "09:00", "endTime": "10:00"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["id"] == "s2"
    assert data["day"] == "Tue"
    assert data["interval"] == 30


def test_update_availability_merges_onto_existing_slot(client: TestClient) -> None:
    response = client.patch(
        "/api/mentors/mentor-1/availability/s1",
        json={"endTime": "13:00"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["startTime"] == "08:00"
    assert data["endTime"] == "13:00"


def test_update_unknown_availability_slot_returns_404(client: TestClient) -> None:
    response = client.patch("/api/mentors/mentor-1/availability/missing", json={"endTime": "13:00"})

    assert response.status_code == 404


def test_delete_generated_slot(client: TestClient, api_client: FakeMarketplaceApiClient) -> None:
    response = client.post(
        "/api/mentors/mentor-1/availability/slots/delete",
        json={"dayOfWeek": 1, "rangeStartTime": "08:00", "specificSlotStartTime": "8:30"},
    )

    assert response.status_code == 200
    assert response.json()["deleted"] is True
    assert api_client.deleted_slots == [("mentor-1", 1, "08:00", "08:30")]


def test_delete_availability_range(client: TestClient) -> None:
    response = client.delete("/api/mentors/mentor-1/availability/s1")

    assert response.status_code == 200
    assert response.json() == {"mentorId": "mentor-1", "deleted": True, "slotId": "s1"}


def test_timezone_endpoints(client: TestClient) -> None:
    country = client.get("/api/timezones/countries/jp")
    valid = client.post("/api/timezones/validate", json={"fallbackCountry": "VN"})
    invalid = client.post("/api/timezones/validate", json={"timezone": "Mars/Base"})

    assert country.json() == {"country": "jp", "timezone": "Asia/Tokyo"}
    assert valid.json() == {"timezone": "Asia/Ho_Chi_Minh"}
    assert invalid.status_code == 422


def test_health_endpoint_returns_expected_shape(client: TestClient) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["local_timezone"] == "UTC"
    assert "service" in data
    assert "timestamp" in data


def _add_booking(
    api_client: FakeMarketplaceApiClient,
    booking_id: str,
    start: str,
    end: str,
    status: str = "SCHEDULED",
) -> None:
    api_client.bookings[booking_id] = Booking.model_validate(
        {
            "id": booking_id,
            "mentorId": "mentor-1",
            "menteeId": "mentee-3",
            "startTime": start,
            "endTime": end,
            "status": status,
        },
    )


def test_reschedule_keeps_booking_length_when_duration_is_omitted(
    client: TestClient,
    api_client: FakeMarketplaceApiClient,
) -> None:
    _add_booking(api_client, "booking-3", "2026-10-19T10:00:00Z", "2026-10-19T10:30:00Z")
    _add_booking(api_client, "booking-4", "2026-10-19T11:00:00Z", "2026-10-19T11:30:00Z")

    moved = client.post(
        "/api/bookings/booking-3/reschedule",
        json={"startTime": "2026-10-19T10:30:00Z"},
    )
    too_long = client.post(
        "/api/bookings/booking-3/reschedule",
        json={"startTime": "2026-10-19T10:30:00Z", "duration": 60},
    )

    assert moved.status_code == 200
    assert moved.json()["endTime"].startswith("2026-10-19T11:00:00")
    assert too_long.status_code == 422
    assert "Conflicting booking" in too_long.json()["detail"]


@pytest.mark.parametrize("status", ["CANCELLED", "COMPLETED"])
def test_reschedule_rejects_closed_booking(
    client: TestClient,
    api_client: FakeMarketplaceApiClient,
    status: str,
) -> None:
    _add_booking(api_client, "booking-5", "2026-10-19T10:00:00Z", "2026-10-19T11:00:00Z", status=status)

    response = client.post(
        "/api/bookings/booking-5/reschedule",
        json={"startTime": "2026-10-19T10:00:00Z"},
    )

    assert response.status_code == 422
    assert response.json()["detail"] == f"Cannot reschedule booking with status: {status}"


def test_startup_warns_about_unknown_local_timezone(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setenv("LOCAL_TIMEZONE", "Mars/Olympus_Mons")
    get_settings.cache_clear()

    with caplog.at_level(logging.INFO, logger="app.main"):
        with TestClient(create_application()) as startup_client:
            response = startup_client.get("/api/health")

    get_settings.cache_clear()
    assert response.status_code == 200
    assert "LOCAL_TIMEZONE=Mars/Olympus_Mons is not a known timezone" in caplog.text
    assert "Scheduling defaults" in caplog.text
