"""Unit tests for ReservationReaper and the scheduled job entrypoint."""

import datetime as dt
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import stripe
from botocore.exceptions import ClientError

from booking_engine import jobs
from booking_engine.engine import BookingEngine
from booking_engine.models import (
    BookingStatus,
    CheckoutRequest,
    CheckoutSession,
    ConcurrencyConflict,
    PaymentStatus,
    Resource,
)
from booking_engine.services.booking_service import UNPAID_STATUSES


@pytest.fixture
def session(
    engine: BookingEngine, rooms: list[Resource], checkout_payload: dict[str, Any]
) -> CheckoutSession:
    return engine.checkout.create_checkout(CheckoutRequest.model_validate(checkout_payload))


def _after_expiry(minutes: int = 31) -> dt.datetime:
    return dt.datetime.now(dt.UTC) + dt.timedelta(minutes=minutes)


class TestReapExpired:
    def test_expired_pending_booking_cancelled_and_released(
        self, engine: BookingEngine, session: CheckoutSession, stripe_client: MagicMock
    ) -> None:
        result = engine.reaper.reap_expired(now=_after_expiry())

        assert result.checked == 1
        assert result.cancelled == [session.booking_id]
        assert result.released_assignments == 1
        booking = engine.bookings.get_or_raise(session.booking_id)
        assert booking.status == BookingStatus.CANCELLED
        assert engine.payments.get_for_booking(session.booking_id).status == PaymentStatus.FAILED
        counts = engine.store.booked_counts(["room-ocean-view"], ["2026-07-01"])
        assert counts[("room-ocean-view", "2026-07-01")] == 0
        stripe_client.checkout.sessions.expire.assert_called_once_with(session.session_id)
        actions = [e.action for e in engine.audit.list_for_resource(session.booking_id)]
        assert "reservation.expired" in actions

    def test_unexpired_booking_left_alone(
        self, engine: BookingEngine, session: CheckoutSession
    ) -> None:
        result = engine.reaper.reap_expired(now=_after_expiry(minutes=5))

        assert result.checked == 0
        assert engine.bookings.get_or_raise(session.booking_id).status == BookingStatus.PENDING

    def test_paid_booking_never_reaped(
        self, engine: BookingEngine, session: CheckoutSession
    ) -> None:
        engine.bookings.transition(session.booking_id, BookingStatus.PAID, UNPAID_STATUSES)

        result = engine.reaper.reap_expired(now=_after_expiry())

        assert result.cancelled == []
        assert engine.bookings.get_or_raise(session.booking_id).status == BookingStatus.PAID

    def test_second_run_is_noop(self, engine: BookingEngine, session: CheckoutSession) -> None:
        engine.reaper.reap_expired(now=_after_expiry())

        result = engine.reaper.reap_expired(now=_after_expiry())

        assert result.checked == 0
        assert result.cancelled == []

    def test_stripe_expiry_failure_does_not_block_release(
        self, engine: BookingEngine, session: CheckoutSession, stripe_client: MagicMock
    ) -> None:
        stripe_client.checkout.sessions.expire.side_effect = stripe.InvalidRequestError(
            "Session is not open", param="session", code="checkout_session_not_open"
        )

        result = engine.reaper.reap_expired(now=_after_expiry())

        assert result.cancelled == [session.booking_id]

    def test_paid_while_reaping_is_skipped(
        self, engine: BookingEngine, session: CheckoutSession, stripe_client: MagicMock
    ) -> None:
        def pay_during_expiry(session_id: str) -> None:
            engine.bookings.transition(session.booking_id, BookingStatus.PAID, UNPAID_STATUSES)

        stripe_client.checkout.sessions.expire.side_effect = pay_during_expiry

        result = engine.reaper.reap_expired(now=_after_expiry())

        assert result.cancelled == []
        assert any(a.is_active for a in engine.store.assignments_for_booking(session.booking_id))

    def test_failed_release_is_retried_next_run(
        self, engine: BookingEngine, session: CheckoutSession
    ) -> None:
        with patch.object(
            engine.store,
            "release_for_booking",
            side_effect=ConcurrencyConflict(message="The record was modified concurrently"),
        ):
            first = engine.reaper.reap_expired(now=_after_expiry())

        assert first.cancelled == []
        assert session.booking_id in first.errors
        assert engine.bookings.get_or_raise(session.booking_id).status == BookingStatus.PENDING

        second = engine.reaper.reap_expired(now=_after_expiry())

        assert second.checked == 1
        assert second.cancelled == [session.booking_id]
        assert engine.bookings.get_or_raise(session.booking_id).status == BookingStatus.CANCELLED
        counts = engine.store.booked_counts(["room-ocean-view"], ["2026-07-01"])
        assert counts[("room-ocean-view", "2026-07-01")] == 0

    def test_storage_error_on_one_booking_does_not_stop_run(
        self,
        engine: BookingEngine,
        rooms: list[Resource],
        checkout_payload: dict[str, Any],
    ) -> None:
        sessions = [
            engine.checkout.create_checkout(CheckoutRequest.model_validate(checkout_payload))
            for _ in range(2)
        ]
        release = engine.store.release_for_booking
        calls = {"n": 0}

        def flaky_release(booking_id: str) -> list:
            calls["n"] += 1
            if calls["n"] == 1:
                raise ClientError(
                    {"Error": {"Code": "InternalServerError", "Message": "Try again"}},
                    "TransactWriteItems",
                )
            return release(booking_id)

        with patch.object(engine.store, "release_for_booking", side_effect=flaky_release):
            result = engine.reaper.reap_expired(now=_after_expiry())

        assert result.checked == 2
        assert len(result.errors) == 1
        assert len(result.cancelled) == 1
        assert set(result.errors) | set(result.cancelled) == {s.booking_id for s in sessions}

    def test_limit(
        self,
        engine: BookingEngine,
        rooms: list[Resource],
        checkout_payload: dict[str, Any],
    ) -> None:
        for _ in range(2):
            engine.checkout.create_checkout(CheckoutRequest.model_validate(checkout_payload))

        result = engine.reaper.reap_expired(now=_after_expiry(), limit=1)

        assert result.checked == 1
        assert len(result.cancelled) == 1


class TestReaperJob:
    def test_handler_runs_engine_reaper(self, engine: BookingEngine, session: CheckoutSession) -> None:
        now = _after_expiry()
        context = MagicMock(aws_request_id="req-123")

        with patch("booking_engine.jobs.build_engine", return_value=engine):
            response = jobs.reaper_handler({"now": now.isoformat()}, context)

        assert response["statusCode"] == 200
        assert response["body"]["cancelled"] == [session.booking_id]
        assert response["body"]["cancelled_count"] == 1
