"""Contract tests for admin jobs, health check and the generic error body."""

import datetime as dt
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from starlette.status import HTTP_200_OK, HTTP_500_INTERNAL_SERVER_ERROR

from booking_engine.engine import BookingEngine
from booking_engine.models import CheckoutRequest, Resource


class TestPing:
    def test_ping(self, client: TestClient) -> None:
        response = client.get("/api/ping")

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["status"] == "ok"
        assert body["service"] == "booking-api"
        assert "X-Correlation-ID" in response.headers


class TestReaperEndpoint:
    def test_releases_expired_holds(
        self,
        client: TestClient,
        engine: BookingEngine,
        rooms: list[Resource],
        checkout_payload: dict[str, Any],
    ) -> None:
        session = engine.checkout.create_checkout(CheckoutRequest.model_validate(checkout_payload))
        later = dt.datetime.now(dt.UTC) + dt.timedelta(hours=1)

        response = client.post("/api/admin/reaper/run", json={"now": later.isoformat()})

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["cancelled"] == [session.booking_id]
        assert body["cancelled_count"] == 1
        assert body["released_assignments"] == 1
        assert body["errors"] == {}

    def test_empty_body(self, client: TestClient, engine: BookingEngine) -> None:
        response = client.post("/api/admin/reaper/run")

        assert response.status_code == HTTP_200_OK
        assert response.json()["checked"] == 0


class TestReconciliationEndpoint:
    def test_report(
        self, client: TestClient, engine: BookingEngine, stripe_client: MagicMock
    ) -> None:
        payment = engine.payments.create_pending(booking_id="BKG-2026-RECON", amount=27000, currency="eur")
        engine.payments.mark_completed(payment.payment_id, "pi_test_recon")
        stripe_client.payment_intents.retrieve.return_value = SimpleNamespace(
            id="pi_test_recon",
            amount=27000,
            currency="eur",
            status="succeeded",
            latest_charge=SimpleNamespace(amount_refunded=0),
        )

        response = client.post("/api/admin/reconciliation", json={"auto_correct": False})

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["summary"]["total_payments_checked"] == 1
        assert body["summary"]["discrepancies_found"] == 0
        assert body["discrepancies"] == []


class TestUnexpectedErrors:
    def test_internal_details_not_leaked(
        self, lenient_client: TestClient, engine: BookingEngine
    ) -> None:
        with patch.object(engine.bookings, "get_or_raise", side_effect=RuntimeError("secret table name")):
            response = lenient_client.get("/api/bookings/BKG-2026-ANY")

        assert response.status_code == HTTP_500_INTERNAL_SERVER_ERROR
        body = response.json()
        assert body["error"] == "INTERNAL_ERROR"
        assert "secret" not in body["message"]
