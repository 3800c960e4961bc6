"""Contract tests for POST /api/refunds.

Test categories:
- Success response (200), including capped requests
- Not refundable and invalid amounts (400)
- Unknown booking (404)
- Refund already in progress (409)
- Stripe rejection (502)
"""

from typing import Any
from unittest.mock import MagicMock

import pytest
import stripe
from fastapi.testclient import TestClient
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_502_BAD_GATEWAY,
)

from booking_engine.engine import BookingEngine
from booking_engine.models import BookingStatus, CheckoutRequest, Resource
from booking_engine.services.booking_service import UNPAID_STATUSES


@pytest.fixture
def booking_id(
    engine: BookingEngine, rooms: list[Resource], checkout_payload: dict[str, Any]
) -> str:
    """Unpaid booking for 270.00 EUR."""
    return engine.checkout.create_checkout(CheckoutRequest.model_validate(checkout_payload)).booking_id


@pytest.fixture
def paid_booking_id(engine: BookingEngine, booking_id: str) -> str:
    payment = engine.payments.get_for_booking(booking_id)
    engine.payments.mark_completed(payment.payment_id, "pi_test_contract")
    engine.bookings.transition(booking_id, BookingStatus.PAID, UNPAID_STATUSES)
    return booking_id


class TestRefundSuccess:
    def test_partial_refund(self, client: TestClient, paid_booking_id: str) -> None:
        response = client.post(
            "/api/refunds",
            json={"booking_id": paid_booking_id, "amount": 7000},
            headers={"X-Actor": "maria"},
        )

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["booking_id"] == paid_booking_id
        assert body["refund_id"] == "re_test_0001"
        assert body["amount_refunded"] == 7000
        assert body["refunded_total"] == 7000
        assert body["remaining_balance"] == 20000
        assert body["capped"] is False
        assert body["booking_status"] == "partial"
        assert body["status"] == "succeeded"

    def test_capped_refund(self, client: TestClient, paid_booking_id: str) -> None:
        response = client.post("/api/refunds", json={"booking_id": paid_booking_id, "amount": 99999})

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["capped"] is True
        assert body["requested_amount"] == 99999
        assert body["amount_refunded"] == 27000
        assert body["booking_status"] == "refunded"


class TestRefundErrors:
    def test_unpaid_booking(self, client: TestClient, booking_id: str) -> None:
        response = client.post("/api/refunds", json={"booking_id": booking_id})

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "NOT_REFUNDABLE"

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount(self, client: TestClient, paid_booking_id: str, amount: int) -> None:
        response = client.post("/api/refunds", json={"booking_id": paid_booking_id, "amount": amount})

        assert response.status_code == HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["field"] == "amount"

    def test_unknown_booking(self, client: TestClient, engine: BookingEngine) -> None:
        response = client.post("/api/refunds", json={"booking_id": "BKG-2026-NOPE"})

        assert response.status_code == HTTP_404_NOT_FOUND
        assert response.json()["error"] == "NOT_FOUND"

    def test_refund_in_progress(
        self, client: TestClient, engine: BookingEngine, paid_booking_id: str
    ) -> None:
        engine.refunds.locks.acquire(f"refund#{paid_booking_id}", 60)

        response = client.post("/api/refunds", json={"booking_id": paid_booking_id})

        assert response.status_code == HTTP_409_CONFLICT
        assert response.json()["error"] == "REFUND_IN_PROGRESS"

    def test_stripe_rejection(
        self, client: TestClient, paid_booking_id: str, stripe_client: MagicMock
    ) -> None:
        stripe_client.refunds.create.side_effect = stripe.InvalidRequestError(
            "Charge has been disputed", param="charge", code="charge_disputed"
        )

        response = client.post("/api/refunds", json={"booking_id": paid_booking_id})

        assert response.status_code == HTTP_502_BAD_GATEWAY
        body = response.json()
        assert body["error"] == "STRIPE_ERROR"
        assert body["details"]["stripe_error_code"] == "charge_disputed"
        assert body["details"]["retryable"] is False
