"""Refund processing against a payment's running refunded total."""

import datetime as dt
from typing import TYPE_CHECKING

from booking_engine.config import EngineSettings, get_settings
from booking_engine.models import (
    BookingStatus,
    BookingValidationError,
    ConcurrencyConflict,
    ErrorCode,
    NotFoundError,
    NotRefundableError,
    PaymentStatus,
    ProviderError,
    RefundRequest,
    RefundResult,
)
from booking_engine.utils.logging import get_logger, log_payment_operation
from booking_engine.utils.retry import retry_on_conflict

from .booking_service import REFUNDABLE_STATUSES
from .stripe_service import StripeServiceError

if TYPE_CHECKING:
    from .audit_service import AuditService
    from .booking_service import BookingService
    from .capacity_store import CapacityStore
    from .locks import LockService
    from .payment_service import PaymentService
    from .stripe_service import StripeService

logger = get_logger(__name__)


class RefundProcessor:
    """Refunds paid bookings, fully or partially.

    A request above the remaining balance is capped, not rejected; the
    capped amount is reported back. Only one refund per booking may be in
    flight at a time.
    """

    def __init__(
        self,
        *,
        bookings: "BookingService",
        payments: "PaymentService",
        store: "CapacityStore",
        stripe_service: "StripeService",
        locks: "LockService",
        audit: "AuditService",
        settings: EngineSettings | None = None,
    ) -> None:
        self.bookings = bookings
        self.payments = payments
        self.store = store
        self.stripe = stripe_service
        self.locks = locks
        self.audit = audit
        self.settings = settings or get_settings()

    def refund(self, request: RefundRequest, actor: str = "staff") -> RefundResult:
        """Refund a booking.

        Raises:
            BookingValidationError: Non-positive amount
            NotFoundError: Unknown booking or missing payment
            NotRefundableError: Wrong booking/payment status or nothing left to refund
            ConcurrencyConflict: Another refund for the booking is in progress
            ProviderError: Stripe rejected the refund
        """
        if request.amount is not None and request.amount <= 0:
            self._audit_rejection(request, actor, "amount must be positive")
            raise BookingValidationError("Refund amount must be positive", field="amount")

        try:
            with self.locks.hold(
                f"refund#{request.booking_id}",
                self.settings.refund_lock_seconds,
                conflict_code=ErrorCode.REFUND_IN_PROGRESS,
            ):
                return self._refund_locked(request, actor)
        except ConcurrencyConflict as e:
            if e.code == ErrorCode.REFUND_IN_PROGRESS:
                self._audit_rejection(request, actor, "another refund is in progress")
            raise

    def _refund_locked(self, request: RefundRequest, actor: str) -> RefundResult:
        booking = self.bookings.get(request.booking_id)
        if booking is None:
            self._audit_rejection(request, actor, "booking not found")
            raise NotFoundError("booking", request.booking_id)
        if booking.status not in REFUNDABLE_STATUSES:
            self._audit_rejection(request, actor, f"booking status is {booking.status.value}")
            raise NotRefundableError(
                message=f"Booking {booking.booking_id} is {booking.status.value} and cannot be refunded",
                details={"booking_id": booking.booking_id, "status": booking.status.value},
            )

        payment = self.payments.get_for_booking(booking.booking_id)
        if payment is None:
            self._audit_rejection(request, actor, "payment not found")
            raise NotFoundError("payment", booking.booking_id)
        if payment.status != PaymentStatus.COMPLETED or not payment.payment_intent_id:
            self._audit_rejection(request, actor, f"payment status is {payment.status.value}")
            raise NotRefundableError(
                message=f"Payment for booking {booking.booking_id} is {payment.status.value}",
                details={"booking_id": booking.booking_id, "payment_status": payment.status.value},
            )

        remaining = payment.remaining_balance
        if remaining <= 0:
            self._audit_rejection(request, actor, "nothing left to refund")
            raise NotRefundableError(
                message=f"Booking {booking.booking_id} has no refundable balance",
                details={"booking_id": booking.booking_id, "remaining_balance": 0},
            )

        requested = request.amount if request.amount is not None else remaining
        actual = min(requested, remaining)
        capped = actual < requested
        if capped:
            logger.info(
                "Refund for %s capped from %d to remaining balance %d",
                booking.booking_id,
                requested,
                actual,
            )

        try:
            refund = self.stripe.create_refund(
                payment_intent_id=payment.payment_intent_id,
                amount_cents=actual,
                reason=request.reason.to_stripe_reason(),
                idempotency_key=f"refund_{booking.booking_id}_{payment.refunded_amount}_{actual}",
                metadata={
                    "booking_id": booking.booking_id,
                    "reason": request.reason.value,
                    "notes": request.notes or "",
                },
            )
        except StripeServiceError as e:
            self.audit.record(
                action="refund.failed",
                resource_type="booking",
                resource_id=booking.booking_id,
                actor=actor,
                success=False,
                details={
                    "amount": actual,
                    "reason": request.reason.value,
                    "error": str(e),
                    "stripe_error_code": e.stripe_error_code,
                },
            )
            log_payment_operation(
                logger,
                "process_refund",
                payment_id=payment.payment_id,
                booking_id=booking.booking_id,
                amount_cents=actual,
                error=str(e),
            )
            raise ProviderError(
                message="Refund could not be processed",
                stripe_error_code=e.stripe_error_code,
                retryable=e.retryable,
                details={"booking_id": booking.booking_id},
            ) from e

        def apply():
            # Re-read on every attempt; the condition checks against this read
            current = self.payments.get_or_raise(payment.payment_id)
            amount = min(actual, current.remaining_balance)
            return self.payments.apply_refund(current, amount, refund["refund_id"])

        updated = retry_on_conflict(apply, description=f"apply refund {booking.booking_id}")

        if updated.is_fully_refunded:
            target = BookingStatus.REFUNDED
            released = self.store.release_for_booking(booking.booking_id)
        else:
            target = BookingStatus.PARTIAL
            released = []
        refreshed, _ = self.bookings.transition(
            booking.booking_id,
            target,
            REFUNDABLE_STATUSES,
            actor=actor,
        )

        processed_at = dt.datetime.now(dt.UTC)
        self.audit.record(
            action="refund.processed",
            resource_type="booking",
            resource_id=booking.booking_id,
            actor=actor,
            details={
                "refund_id": refund["refund_id"],
                "amount": actual,
                "requested_amount": requested,
                "capped": capped,
                "reason": request.reason.value,
                "notes": request.notes,
                "refunded_total": updated.refunded_amount,
                "booking_status": refreshed.status.value,
                "released_assignments": [a.assignment_id for a in released],
            },
        )

        return RefundResult(
            refund_id=refund["refund_id"],
            booking_id=booking.booking_id,
            payment_id=payment.payment_id,
            amount_refunded=actual,
            requested_amount=request.amount,
            capped=capped,
            refunded_total=updated.refunded_amount,
            remaining_balance=updated.remaining_balance,
            currency=payment.currency,
            status=refund["status"],
            booking_status=refreshed.status,
            processed_at=processed_at,
        )

    def _audit_rejection(self, request: RefundRequest, actor: str, reason: str) -> None:
        self.audit.record(
            action="refund.rejected",
            resource_type="booking",
            resource_id=request.booking_id,
            actor=actor,
            success=False,
            details={"amount": request.amount, "reason": request.reason.value, "cause": reason},
        )
