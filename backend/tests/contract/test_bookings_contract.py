"""Contract tests for booking lookup and staff confirmation."""

from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.status import HTTP_200_OK, HTTP_404_NOT_FOUND, HTTP_409_CONFLICT

from booking_engine.engine import BookingEngine
from booking_engine.models import BookingStatus, CheckoutRequest, Resource
from booking_engine.services.booking_service import UNPAID_STATUSES


@pytest.fixture
def booking_id(
    engine: BookingEngine, rooms: list[Resource], checkout_payload: dict[str, Any]
) -> str:
    return engine.checkout.create_checkout(CheckoutRequest.model_validate(checkout_payload)).booking_id


class TestGetBooking:
    def test_booking_with_payment(self, client: TestClient, booking_id: str) -> None:
        response = client.get(f"/api/bookings/{booking_id}")

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["booking"]["booking_id"] == booking_id
        assert body["booking"]["status"] == "pending"
        assert body["booking"]["total_amount"] == 27000
        assert body["payment"]["status"] == "pending"
        assert body["payment"]["remaining_balance"] == 27000
        assert body["changed"] is None

    def test_unknown_booking(self, client: TestClient, engine: BookingEngine) -> None:
        response = client.get("/api/bookings/BKG-2026-NOPE")

        assert response.status_code == HTTP_404_NOT_FOUND
        body = response.json()
        assert body["error"] == "NOT_FOUND"
        assert body["details"] == {"booking_id": "BKG-2026-NOPE"}


class TestConfirmBooking:
    def test_confirm_paid_booking_twice(
        self, client: TestClient, engine: BookingEngine, booking_id: str
    ) -> None:
        engine.bookings.transition(booking_id, BookingStatus.PAID, UNPAID_STATUSES)

        first = client.post(f"/api/bookings/{booking_id}/confirm", headers={"X-Actor": "maria"})
        second = client.post(f"/api/bookings/{booking_id}/confirm")

        assert first.status_code == HTTP_200_OK
        assert first.json()["booking"]["status"] == "confirmed"
        assert first.json()["changed"] is True
        assert second.status_code == HTTP_200_OK
        assert second.json()["changed"] is False
        actors = [
            e.actor
            for e in engine.audit.list_for_resource(booking_id)
            if e.details.get("status") == "confirmed"
        ]
        assert actors == ["staff:maria"]

    def test_confirm_unpaid_booking(self, client: TestClient, booking_id: str) -> None:
        response = client.post(f"/api/bookings/{booking_id}/confirm")

        assert response.status_code == HTTP_409_CONFLICT
        body = response.json()
        assert body["error"] == "INVALID_STATE"
        assert body["details"]["current_status"] == "pending"

    def test_confirm_unknown_booking(self, client: TestClient, engine: BookingEngine) -> None:
        response = client.post("/api/bookings/BKG-2026-NOPE/confirm")

        assert response.status_code == HTTP_404_NOT_FOUND
