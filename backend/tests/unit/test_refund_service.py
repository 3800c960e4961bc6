"""Unit tests for RefundProcessor.

Test categories:
- Partial and full refunds against the running refunded total
- Capping requests at the remaining balance
- Rejections for bookings that were never paid or are fully refunded
- One refund in flight per booking
- Stripe failures leave local state untouched
"""

import datetime as dt
from typing import Any
from unittest.mock import MagicMock

import pytest
import stripe

from booking_engine.engine import BookingEngine
from booking_engine.models import (
    BookingStatus,
    CheckoutRequest,
    ConcurrencyConflict,
    ErrorCode,
    NotFoundError,
    NotRefundableError,
    PaymentStatus,
    ProviderError,
    RefundReason,
    RefundRequest,
    Resource,
    ResourceType,
)
from booking_engine.services.booking_service import UNPAID_STATUSES

NIGHT = dt.date(2026, 8, 10)


@pytest.fixture
def villa(engine: BookingEngine) -> Resource:
    """One night in the villa costs exactly 1000.00."""
    resource = Resource(
        resource_id="room-villa",
        name="Villa",
        resource_type=ResourceType.ROOM,
        capacity=1,
        unit_price=100000,
    )
    engine.catalog.save_resource(resource)
    return resource


def _checkout(engine: BookingEngine, checkout_payload: dict[str, Any]) -> str:
    request = CheckoutRequest.model_validate(
        {
            **checkout_payload,
            "items": [
                {
                    "resource_id": "room-villa",
                    "check_in": NIGHT.isoformat(),
                    "check_out": (NIGHT + dt.timedelta(days=1)).isoformat(),
                }
            ],
        }
    )
    return engine.checkout.create_checkout(request).booking_id


@pytest.fixture
def paid_booking_id(
    engine: BookingEngine, villa: Resource, checkout_payload: dict[str, Any]
) -> str:
    booking_id = _checkout(engine, checkout_payload)
    payment = engine.payments.get_for_booking(booking_id)
    engine.payments.mark_completed(payment.payment_id, "pi_test_villa")
    engine.bookings.transition(booking_id, BookingStatus.PAID, UNPAID_STATUSES)
    return booking_id


def _villa_booked(engine: BookingEngine) -> int:
    counts = engine.store.booked_counts(["room-villa"], [NIGHT.isoformat()])
    return counts.get(("room-villa", NIGHT.isoformat()), 0)


class TestRefundAmounts:
    def test_partial_refund_after_prior_refund(
        self, engine: BookingEngine, paid_booking_id: str
    ) -> None:
        """500 of a 1000 payment with 200 already refunded: total 700, booking partial."""
        engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=20000))

        result = engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=50000))

        assert result.amount_refunded == 50000
        assert result.capped is False
        assert result.refunded_total == 70000
        assert result.remaining_balance == 30000
        assert result.booking_status == BookingStatus.PARTIAL
        payment = engine.payments.get_for_booking(paid_booking_id)
        assert payment.refunded_amount == 70000
        assert payment.status == PaymentStatus.COMPLETED
        assert len(payment.refund_ids) == 2
        assert _villa_booked(engine) == 1

    def test_full_refund_releases_capacity(
        self, engine: BookingEngine, paid_booking_id: str
    ) -> None:
        result = engine.refunds.refund(RefundRequest(booking_id=paid_booking_id))

        assert result.amount_refunded == 100000
        assert result.requested_amount is None
        assert result.refunded_total == 100000
        assert result.booking_status == BookingStatus.REFUNDED
        assert engine.payments.get_for_booking(paid_booking_id).status == PaymentStatus.REFUNDED
        assert engine.bookings.get_or_raise(paid_booking_id).status == BookingStatus.REFUNDED
        assert _villa_booked(engine) == 0

    def test_request_above_balance_is_capped(
        self, engine: BookingEngine, paid_booking_id: str
    ) -> None:
        engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=20000))

        result = engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=250000))

        assert result.requested_amount == 250000
        assert result.amount_refunded == 80000
        assert result.capped is True
        assert result.refunded_total == 100000
        assert result.booking_status == BookingStatus.REFUNDED

    def test_confirmed_booking_is_refundable(
        self, engine: BookingEngine, paid_booking_id: str
    ) -> None:
        engine.bookings.confirm(paid_booking_id)

        result = engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=10000))

        assert result.booking_status == BookingStatus.PARTIAL

    def test_stripe_called_with_idempotency_key(
        self, engine: BookingEngine, paid_booking_id: str, stripe_client: MagicMock
    ) -> None:
        engine.refunds.refund(
            RefundRequest(booking_id=paid_booking_id, amount=30000, reason=RefundReason.DUPLICATE)
        )

        kwargs = stripe_client.refunds.create.call_args.kwargs
        assert kwargs["params"]["payment_intent"] == "pi_test_villa"
        assert kwargs["params"]["amount"] == 30000
        assert kwargs["params"]["reason"] == "duplicate"
        assert kwargs["options"] == {"idempotency_key": f"refund_{paid_booking_id}_0_30000"}

    def test_refund_audited(
        self, engine: BookingEngine, paid_booking_id: str
    ) -> None:
        engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=30000), actor="staff:ops")

        (entry,) = [
            e for e in engine.audit.list_for_resource(paid_booking_id) if e.action == "refund.processed"
        ]
        assert entry.actor == "staff:ops"
        assert entry.details["amount"] == 30000
        assert entry.details["refunded_total"] == 30000


class TestRejections:
    def test_unpaid_booking_not_refundable(
        self,
        engine: BookingEngine,
        villa: Resource,
        checkout_payload: dict[str, Any],
        stripe_client: MagicMock,
    ) -> None:
        booking_id = _checkout(engine, checkout_payload)

        with pytest.raises(NotRefundableError):
            engine.refunds.refund(RefundRequest(booking_id=booking_id))

        stripe_client.refunds.create.assert_not_called()
        actions = [e.action for e in engine.audit.list_for_resource(booking_id)]
        assert "refund.rejected" in actions

    def test_fully_refunded_booking_not_refundable(
        self, engine: BookingEngine, paid_booking_id: str
    ) -> None:
        engine.refunds.refund(RefundRequest(booking_id=paid_booking_id))

        with pytest.raises(NotRefundableError):
            engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=100))

    def test_unknown_booking(self, engine: BookingEngine) -> None:
        with pytest.raises(NotFoundError):
            engine.refunds.refund(RefundRequest(booking_id="BKG-2026-MISSING"), actor="staff:maria")

        (entry,) = engine.audit.list_for_resource("BKG-2026-MISSING")
        assert entry.action == "refund.rejected"
        assert entry.success is False
        assert entry.actor == "staff:maria"
        assert entry.details["cause"] == "booking not found"

    def test_refund_in_progress(self, engine: BookingEngine, paid_booking_id: str) -> None:
        engine.refunds.locks.acquire(f"refund#{paid_booking_id}", 60)

        with pytest.raises(ConcurrencyConflict) as exc_info:
            engine.refunds.refund(RefundRequest(booking_id=paid_booking_id))

        assert exc_info.value.code == ErrorCode.REFUND_IN_PROGRESS
        assert engine.payments.get_for_booking(paid_booking_id).refunded_amount == 0
        rejected = [
            e for e in engine.audit.list_for_resource(paid_booking_id) if e.action == "refund.rejected"
        ]
        assert len(rejected) == 1
        assert rejected[0].details["cause"] == "another refund is in progress"


class TestStripeFailure:
    def test_failure_leaves_payment_unchanged(
        self, engine: BookingEngine, paid_booking_id: str, stripe_client: MagicMock
    ) -> None:
        stripe_client.refunds.create.side_effect = stripe.InvalidRequestError(
            "Charge has already been refunded", param="amount", code="charge_already_refunded"
        )

        with pytest.raises(ProviderError) as exc_info:
            engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=10000))

        assert exc_info.value.stripe_error_code == "charge_already_refunded"
        assert exc_info.value.retryable is False
        assert engine.payments.get_for_booking(paid_booking_id).refunded_amount == 0
        assert engine.bookings.get_or_raise(paid_booking_id).status == BookingStatus.PAID
        actions = [e.action for e in engine.audit.list_for_resource(paid_booking_id)]
        assert "refund.failed" in actions

    def test_lock_released_after_failure(
        self, engine: BookingEngine, paid_booking_id: str, stripe_client: MagicMock
    ) -> None:
        create_refund = stripe_client.refunds.create.side_effect
        stripe_client.refunds.create.side_effect = stripe.APIConnectionError("timeout")
        with pytest.raises(ProviderError):
            engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=10000))

        stripe_client.refunds.create.side_effect = create_refund
        result = engine.refunds.refund(RefundRequest(booking_id=paid_booking_id, amount=10000))

        assert result.refunded_total == 10000
