"""Contract tests for POST /api/webhooks/stripe.

Test categories:
- Signature verification (400)
- Processed and duplicate deliveries (200)
- Processing failures ask Stripe to retry (500)
"""

from typing import Any, Callable
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from booking_engine.engine import BookingEngine
from booking_engine.models import BookingStatus, CheckoutRequest, CheckoutSession, Resource

EventFactory = Callable[..., tuple[bytes, str]]


@pytest.fixture
def session(
    engine: BookingEngine, rooms: list[Resource], checkout_payload: dict[str, Any]
) -> CheckoutSession:
    return engine.checkout.create_checkout(CheckoutRequest.model_validate(checkout_payload))


def _paid_session(session: CheckoutSession) -> dict[str, Any]:
    return {
        "id": session.session_id,
        "object": "checkout.session",
        "payment_status": "paid",
        "payment_intent": "pi_test_contract",
        "amount_total": session.amount_total,
        "client_reference_id": session.booking_id,
        "metadata": {"booking_id": session.booking_id},
    }


def _post(client: TestClient, payload: bytes, signature: str | None) -> Any:
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post("/api/webhooks/stripe", content=payload, headers=headers)


class TestWebhookSignature:
    def test_missing_signature(self, client: TestClient, webhook_event: EventFactory) -> None:
        payload, _ = webhook_event("checkout.session.completed", {"id": "cs_test_x"})

        response = _post(client, payload, None)

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "INVALID_SIGNATURE"

    def test_forged_signature(self, client: TestClient, webhook_event: EventFactory) -> None:
        payload, signature = webhook_event("checkout.session.completed", {"id": "cs_test_x"})
        timestamp = signature.split(",")[0]

        response = _post(client, payload, f"{timestamp},v1={'f' * 64}")

        assert response.status_code == HTTP_400_BAD_REQUEST

    def test_get_not_allowed(self, client: TestClient) -> None:
        assert client.get("/api/webhooks/stripe").status_code == HTTP_405_METHOD_NOT_ALLOWED


class TestWebhookDelivery:
    def test_payment_marks_booking_paid(
        self,
        client: TestClient,
        engine: BookingEngine,
        session: CheckoutSession,
        webhook_event: EventFactory,
    ) -> None:
        payload, signature = webhook_event(
            "checkout.session.completed", _paid_session(session), event_id="evt_contract_1"
        )

        response = _post(client, payload, signature)

        assert response.status_code == HTTP_200_OK
        assert response.json() == {
            "status": "processed",
            "event_id": "evt_contract_1",
            "event_type": "checkout.session.completed",
            "message": None,
        }
        assert engine.bookings.get_or_raise(session.booking_id).status == BookingStatus.PAID

    def test_duplicate_delivery(
        self, client: TestClient, session: CheckoutSession, webhook_event: EventFactory
    ) -> None:
        payload, signature = webhook_event(
            "checkout.session.completed", _paid_session(session), event_id="evt_contract_2"
        )
        _post(client, payload, signature)

        response = _post(client, payload, signature)

        assert response.status_code == HTTP_200_OK
        assert response.json()["status"] == "already_processed"

    def test_unsupported_event_acknowledged(
        self, client: TestClient, webhook_event: EventFactory
    ) -> None:
        payload, signature = webhook_event("customer.created", {"id": "cus_test_1"})

        response = _post(client, payload, signature)

        assert response.status_code == HTTP_200_OK
        assert response.json()["status"] == "processed"

    def test_processing_failure_returns_500(
        self,
        client: TestClient,
        engine: BookingEngine,
        session: CheckoutSession,
        webhook_event: EventFactory,
    ) -> None:
        payload, signature = webhook_event("checkout.session.completed", _paid_session(session))

        with patch.object(engine.payments, "mark_completed", side_effect=RuntimeError("db down")):
            response = _post(client, payload, signature)

        assert response.status_code == HTTP_500_INTERNAL_SERVER_ERROR
        body = response.json()
        assert body["error"] == "WEBHOOK_PROCESSING_FAILED"
        assert "db down" not in body["message"]
