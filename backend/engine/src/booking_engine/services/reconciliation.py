"""Payment reconciliation against Stripe.

Compares local payments with their PaymentIntents and reports mismatches.
Auto-correction only raises ``refunded_amount`` (never lowers it) and only
moves a pending payment to completed or failed. A raised refund total also
moves the booking to partial or refunded, releasing its holds when the
payment is fully refunded.
"""

import datetime as dt
import time
from typing import TYPE_CHECKING, Any

from booking_engine.models import (
    BookingStatus,
    Discrepancy,
    DiscrepancySeverity,
    DiscrepancyType,
    Payment,
    PaymentStatus,
    ReconciliationReport,
    ReconciliationRequest,
    ReconciliationSummary,
)
from booking_engine.utils.logging import get_logger

from .booking_service import REFUNDABLE_STATUSES
from .stripe_service import StripeServiceError

if TYPE_CHECKING:
    from .audit_service import AuditService
    from .booking_service import BookingService
    from .capacity_store import CapacityStore
    from .payment_service import PaymentService
    from .stripe_service import StripeService

logger = get_logger(__name__)

DEFAULT_WINDOW_DAYS = 30

# Stripe PaymentIntent status -> local payment status
_STRIPE_STATUS_MAP = {
    "succeeded": PaymentStatus.COMPLETED,
    "canceled": PaymentStatus.FAILED,
}


def expected_local_status(stripe_status: str) -> PaymentStatus:
    return _STRIPE_STATUS_MAP.get(stripe_status, PaymentStatus.PENDING)


class ReconciliationService:
    def __init__(
        self,
        *,
        payments: "PaymentService",
        bookings: "BookingService",
        store: "CapacityStore",
        stripe_service: "StripeService",
        audit: "AuditService",
    ) -> None:
        self.payments = payments
        self.bookings = bookings
        self.store = store
        self.stripe = stripe_service
        self.audit = audit

    def reconcile(self, request: ReconciliationRequest, actor: str = "system:reconciliation") -> ReconciliationReport:
        """Check payments created in [date_from, date_to] against Stripe."""
        started = time.monotonic()
        executed_at = dt.datetime.now(dt.UTC)
        date_to = request.date_to or executed_at
        date_from = request.date_from or date_to - dt.timedelta(days=DEFAULT_WINDOW_DAYS)

        payments = self.payments.list_in_range(date_from, date_to, request.limit)
        discrepancies: list[Discrepancy] = []
        api_calls = 0

        for payment in payments:
            api_calls += 1
            try:
                intent = self.stripe.retrieve_payment_intent(payment.payment_intent_id)
            except StripeServiceError as e:
                if e.stripe_error_code == "resource_missing":
                    discrepancies.append(
                        Discrepancy(
                            type=DiscrepancyType.MISSING_PAYMENT,
                            severity=DiscrepancySeverity.HIGH,
                            booking_id=payment.booking_id,
                            payment_id=payment.payment_id,
                            payment_intent_id=payment.payment_intent_id,
                            description="Payment exists locally but not in Stripe",
                            suggested_action="Investigate why payment exists locally but not in Stripe",
                        )
                    )
                    continue
                logger.error("Could not retrieve %s: %s", payment.payment_intent_id, e)
                continue

            found = self._compare(payment, intent)
            if request.auto_correct:
                found = self._auto_correct(payment, intent, found, actor)
            discrepancies.extend(found)

        auto_corrected = sum(1 for d in discrepancies if d.auto_corrected)
        summary = ReconciliationSummary(
            total_payments_checked=len(payments),
            discrepancies_found=len(discrepancies),
            auto_corrected=auto_corrected,
            manual_review_required=sum(
                1
                for d in discrepancies
                if not d.auto_corrected and d.severity == DiscrepancySeverity.HIGH
            ),
            execution_time_ms=int((time.monotonic() - started) * 1000),
            stripe_api_calls=api_calls,
        )

        self.audit.record(
            action="payments.reconciled",
            resource_type="system",
            resource_id="payment-reconciliation",
            actor=actor,
            success=True,
            details={
                "date_from": date_from.isoformat(),
                "date_to": date_to.isoformat(),
                "auto_correct": request.auto_correct,
                **summary.model_dump(),
            },
        )
        logger.info(
            "Reconciliation checked %d payments: %d discrepancies, %d corrected",
            summary.total_payments_checked,
            summary.discrepancies_found,
            summary.auto_corrected,
        )
        return ReconciliationReport(
            summary=summary,
            discrepancies=discrepancies,
            date_from=date_from,
            date_to=date_to,
            executed_at=executed_at,
        )

    def _compare(self, payment: Payment, intent: dict[str, Any]) -> list[Discrepancy]:
        found: list[Discrepancy] = []
        common = {
            "booking_id": payment.booking_id,
            "payment_id": payment.payment_id,
            "payment_intent_id": payment.payment_intent_id,
        }

        if intent["amount"] != payment.amount:
            found.append(
                Discrepancy(
                    type=DiscrepancyType.AMOUNT_MISMATCH,
                    severity=DiscrepancySeverity.HIGH,
                    local_value=payment.amount,
                    provider_value=intent["amount"],
                    description=f"Local amount {payment.amount} differs from Stripe amount {intent['amount']}",
                    suggested_action="Review the booking total against the Stripe charge",
                    **common,
                )
            )

        expected = expected_local_status(intent["status"])
        if payment.status != PaymentStatus.REFUNDED and payment.status != expected:
            found.append(
                Discrepancy(
                    type=DiscrepancyType.STATUS_MISMATCH,
                    severity=DiscrepancySeverity.MEDIUM,
                    local_value=payment.status.value,
                    provider_value=intent["status"],
                    description=f"Local status {payment.status.value} but Stripe reports {intent['status']}",
                    suggested_action="Update local payment status to match Stripe",
                    **common,
                )
            )

        if intent["amount_refunded"] != payment.refunded_amount:
            found.append(
                Discrepancy(
                    type=DiscrepancyType.REFUND_MISMATCH,
                    severity=DiscrepancySeverity.MEDIUM,
                    local_value=payment.refunded_amount,
                    provider_value=intent["amount_refunded"],
                    description=(
                        f"Local refunded total {payment.refunded_amount} differs from "
                        f"Stripe {intent['amount_refunded']}"
                    ),
                    suggested_action="Update local refunded amount to match Stripe",
                    **common,
                )
            )
        return found

    def _auto_correct(
        self, payment: Payment, intent: dict[str, Any], found: list[Discrepancy], actor: str
    ) -> list[Discrepancy]:
        changes: dict[str, Any] = {}
        corrected: set[DiscrepancyType] = set()

        refunded = intent["amount_refunded"]
        if refunded > payment.refunded_amount and refunded <= payment.amount:
            changes["refunded_amount"] = refunded
            if refunded == payment.amount:
                changes["status"] = PaymentStatus.REFUNDED.value
            corrected.add(DiscrepancyType.REFUND_MISMATCH)

        expected = expected_local_status(intent["status"])
        if (
            "status" not in changes
            and payment.status == PaymentStatus.PENDING
            and expected in (PaymentStatus.COMPLETED, PaymentStatus.FAILED)
        ):
            changes["status"] = expected.value
            corrected.add(DiscrepancyType.STATUS_MISMATCH)

        updated = self.payments.correct(payment, changes) if changes else None
        if updated is None:
            if changes:
                logger.warning("Payment %s changed during reconciliation; not corrected", payment.payment_id)
            return found

        logger.info("Auto-corrected payment %s: %s", payment.payment_id, changes)
        if DiscrepancyType.REFUND_MISMATCH in corrected:
            self._sync_booking(updated, actor)
        return [
            d.model_copy(update={"auto_corrected": True}) if d.type in corrected else d
            for d in found
        ]

    def _sync_booking(self, payment: Payment, actor: str) -> None:
        """Move the booking to partial or refunded after its refund total was raised."""
        booking = self.bookings.get(payment.booking_id)
        if booking is None or booking.status not in REFUNDABLE_STATUSES:
            logger.warning(
                "Booking %s not refundable; status left as is after correcting %s",
                payment.booking_id,
                payment.payment_id,
            )
            return

        if payment.is_fully_refunded:
            self.store.release_for_booking(booking.booking_id)
            target = BookingStatus.REFUNDED
        else:
            target = BookingStatus.PARTIAL
        self.bookings.transition(booking.booking_id, target, REFUNDABLE_STATUSES, actor=actor)
