"""Webhook processing for Stripe events.

Business logic for webhook events, separate from HTTP routing:
- Signature verification happens before anything is written
- Each event ID is claimed atomically in the webhook-events table, so two
  deliveries of the same event cannot both apply it
- The record is marked processed only after every downstream write
- Failures below the retry ceiling are surfaced so Stripe redelivers;
  at the ceiling the event is abandoned, audited and acknowledged
"""

import datetime as dt
import hashlib
from typing import TYPE_CHECKING, Any, Callable

from booking_engine.config import EngineSettings, get_settings
from booking_engine.models import (
    BookingError,
    BookingStatus,
    BookingValidationError,
    ConcurrencyConflict,
    ErrorCode,
    InvalidStateError,
    NotFoundError,
    SignatureError,
    WebhookEventRecord,
    WebhookOutcome,
    WebhookProcessingError,
    WebhookProcessingResult,
    WebhookResult,
)
from booking_engine.utils.logging import get_logger, log_webhook_event

from .booking_service import UNPAID_STATUSES
from .stripe_service import StripeServiceError, WebhookSignatureError

if TYPE_CHECKING:
    from booking_engine.models import Payment

    from .audit_service import AuditService
    from .booking_service import BookingService
    from .capacity_store import CapacityStore
    from .payment_service import PaymentService
    from .stripe_service import StripeService

logger = get_logger(__name__)

ACTOR = "system:webhook"


class WebhookProcessor:
    """Applies verified Stripe events exactly once.

    Usage:
        processor = WebhookProcessor(stripe_service=..., bookings=..., payments=..., store=..., audit=...)
        result = processor.handle(raw_body, request.headers.get("Stripe-Signature"))
    """

    TABLE = "webhook-events"

    def __init__(
        self,
        *,
        stripe_service: "StripeService",
        bookings: "BookingService",
        payments: "PaymentService",
        store: "CapacityStore",
        audit: "AuditService",
        settings: EngineSettings | None = None,
    ) -> None:
        self.stripe = stripe_service
        self.bookings = bookings
        self.payments = payments
        self.store = store
        self.audit = audit
        self.db = bookings.db
        self.settings = settings or get_settings()
        self._handlers: dict[str, Callable[[dict[str, Any]], str | None]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "payment_intent.succeeded": self._on_payment_intent_succeeded,
            "payment_intent.payment_failed": self._on_payment_intent_failed,
            "checkout.session.expired": self._on_checkout_expired,
            "charge.dispute.created": self._on_dispute_created,
            "invoice.payment_succeeded": self._on_invoice,
            "invoice.payment_failed": self._on_invoice,
        }

    def handle(self, payload: bytes, signature: str | None) -> WebhookResult:
        """Verify, deduplicate and apply one webhook delivery.

        Raises:
            SignatureError: Missing or invalid signature; nothing is recorded
            ConcurrencyConflict: Another delivery of the event is being processed
            WebhookProcessingError: Processing failed below the retry ceiling
        """
        if not signature:
            logger.warning("Webhook delivery without signature header")
            raise SignatureError()
        try:
            event = self.stripe.verify_webhook_signature(payload, signature)
        except WebhookSignatureError as e:
            raise SignatureError(message=str(e)) from e
        except StripeServiceError as e:
            raise WebhookProcessingError(message="Webhook secret unavailable") from e

        event_id = event.get("id")
        event_type = event.get("type", "")
        if not event_id:
            raise BookingValidationError("Event has no id", field="id")

        payload_hash = hashlib.sha256(payload).hexdigest()
        record = self._claim(event_id, event_type, payload_hash)
        if record is None:
            return self._already_seen(event_id, event_type)

        try:
            booking_id = self._dispatch(event_type, event)
        except Exception as e:
            return self._record_failure(record, e)

        self._mark_processed(event_id, booking_id)
        log_webhook_event(
            logger,
            event_type,
            event_id,
            booking_id=booking_id,
            result="processed",
            attempts=record.processing_attempts,
        )
        return WebhookResult(
            status=WebhookOutcome.PROCESSED,
            event_id=event_id,
            event_type=event_type,
            booking_id=booking_id,
        )

    def get_event(self, event_id: str) -> WebhookEventRecord | None:
        item = self.db.get_item(self.TABLE, {"event_id": event_id}, consistent_read=True)
        return WebhookEventRecord.model_validate(item) if item else None

    # Idempotency record

    def _claim(self, event_id: str, event_type: str, payload_hash: str) -> WebhookEventRecord | None:
        """Create or take over the idempotency record for one attempt.

        Succeeds for a new event, or for an unprocessed one whose previous
        attempt is not still holding its lease.
        """
        now = dt.datetime.now(dt.UTC)
        now_ts = int(now.timestamp())
        updated = self.db.update_item(
            self.TABLE,
            {"event_id": event_id},
            update_expression=(
                "SET event_type = :type, #processed = if_not_exists(#processed, :false), "
                "processing_result = :in_progress, last_attempt_at = :now, "
                "locked_until = :lease, created_at = if_not_exists(created_at, :now), "
                "payload_hash = :hash "
                "ADD processing_attempts :one"
            ),
            expression_attribute_values={
                ":type": event_type,
                ":false": False,
                ":in_progress": WebhookProcessingResult.IN_PROGRESS.value,
                ":abandoned": WebhookProcessingResult.ABANDONED.value,
                ":now": now.isoformat(),
                ":now_ts": now_ts,
                ":lease": now_ts + self.settings.webhook_lease_seconds,
                ":hash": payload_hash,
                ":one": 1,
            },
            expression_attribute_names={"#processed": "processed"},
            condition_expression=(
                "attribute_not_exists(event_id) OR "
                "(#processed = :false AND processing_result <> :abandoned AND "
                "(attribute_not_exists(locked_until) OR locked_until < :now_ts))"
            ),
        )
        return WebhookEventRecord.model_validate(updated) if updated else None

    def _already_seen(self, event_id: str, event_type: str) -> WebhookResult:
        record = self.get_event(event_id)
        if record is not None and record.processed:
            log_webhook_event(logger, event_type, event_id, booking_id=record.booking_id, result="duplicate")
            return WebhookResult(
                status=WebhookOutcome.ALREADY_PROCESSED,
                event_id=event_id,
                event_type=event_type,
                booking_id=record.booking_id,
            )
        if record is not None and record.processing_result == WebhookProcessingResult.ABANDONED:
            log_webhook_event(logger, event_type, event_id, result="duplicate", abandoned=True)
            return WebhookResult(
                status=WebhookOutcome.ALREADY_PROCESSED,
                event_id=event_id,
                event_type=event_type,
                booking_id=record.booking_id,
                message=f"Event was abandoned after {record.processing_attempts} attempts",
            )
        log_webhook_event(logger, event_type, event_id, result="skipped", in_progress=True)
        raise ConcurrencyConflict(code=ErrorCode.EVENT_IN_PROGRESS, details={"event_id": event_id})

    def _mark_processed(self, event_id: str, booking_id: str | None) -> None:
        set_parts = [
            "#processed = :true",
            "processing_result = :processed",
            "processed_at = :now",
        ]
        values: dict[str, Any] = {
            ":true": True,
            ":processed": WebhookProcessingResult.PROCESSED.value,
            ":now": dt.datetime.now(dt.UTC).isoformat(),
        }
        if booking_id:
            set_parts.append("booking_id = :booking_id")
            values[":booking_id"] = booking_id
        self.db.update_item(
            self.TABLE,
            {"event_id": event_id},
            update_expression="SET " + ", ".join(set_parts) + " REMOVE locked_until, error_message",
            expression_attribute_values=values,
            expression_attribute_names={"#processed": "processed"},
        )

    def _record_failure(self, record: WebhookEventRecord, error: Exception) -> WebhookResult:
        message = error.message if isinstance(error, BookingError) else f"{type(error).__name__}: {error}"
        abandoned = record.processing_attempts >= self.settings.webhook_max_attempts
        result = WebhookProcessingResult.ABANDONED if abandoned else WebhookProcessingResult.FAILED

        self.db.update_item(
            self.TABLE,
            {"event_id": record.event_id},
            update_expression="SET processing_result = :result, error_message = :error REMOVE locked_until",
            expression_attribute_values={":result": result.value, ":error": message},
        )

        if not abandoned:
            log_webhook_event(
                logger,
                record.event_type,
                record.event_id,
                result="error",
                error=message,
                attempts=record.processing_attempts,
            )
            raise WebhookProcessingError(
                details={"event_id": record.event_id, "attempts": record.processing_attempts}
            ) from error

        log_webhook_event(
            logger,
            record.event_type,
            record.event_id,
            result="abandoned",
            error=message,
            attempts=record.processing_attempts,
        )
        self.audit.record(
            action="webhook.abandoned",
            resource_type="webhook_event",
            resource_id=record.event_id,
            actor=ACTOR,
            success=False,
            details={
                "event_type": record.event_type,
                "attempts": record.processing_attempts,
                "error": message,
            },
        )
        return WebhookResult(
            status=WebhookOutcome.REJECTED,
            event_id=record.event_id,
            event_type=record.event_type,
            message=f"Abandoned after {record.processing_attempts} attempts",
        )

    # Dispatch

    def _dispatch(self, event_type: str, event: dict[str, Any]) -> str | None:
        handler = self._handlers.get(event_type)
        if handler is None:
            log_webhook_event(logger, event_type, event.get("id", ""), result="skipped", unsupported=True)
            return None
        obj = event.get("data", {}).get("object", {})
        return handler(obj)

    def _on_checkout_completed(self, session: dict[str, Any]) -> str | None:
        booking_id, payment_id = _correlation(session)
        if not booking_id:
            logger.warning("checkout.session.completed %s without booking_id in metadata", session.get("id"))
            return None
        if session.get("payment_status") != "paid":
            # Delayed payment methods complete later via payment_intent.succeeded
            logger.info(
                "checkout.session.completed for %s with payment_status=%s, waiting for payment",
                booking_id,
                session.get("payment_status"),
            )
            return booking_id
        self._apply_payment_success(
            booking_id,
            payment_id,
            payment_intent_id=session.get("payment_intent"),
            amount=session.get("amount_total"),
        )
        return booking_id

    def _on_payment_intent_succeeded(self, intent: dict[str, Any]) -> str | None:
        booking_id, payment_id = _correlation(intent)
        if not booking_id:
            logger.warning("payment_intent.succeeded %s without booking_id in metadata", intent.get("id"))
            return None
        self._apply_payment_success(
            booking_id,
            payment_id,
            payment_intent_id=intent.get("id"),
            amount=intent.get("amount_received") or intent.get("amount"),
        )
        return booking_id

    def _on_payment_intent_failed(self, intent: dict[str, Any]) -> str | None:
        booking_id, payment_id = _correlation(intent)
        if not booking_id:
            logger.warning("payment_intent.payment_failed %s without booking_id in metadata", intent.get("id"))
            return None
        error = (intent.get("last_payment_error") or {}).get("message") or "Payment failed"
        self._cancel_unpaid(booking_id, payment_id, error, reason="payment_failed")
        return booking_id

    def _on_checkout_expired(self, session: dict[str, Any]) -> str | None:
        booking_id, payment_id = _correlation(session)
        if not booking_id:
            logger.warning("checkout.session.expired %s without booking_id in metadata", session.get("id"))
            return None
        self._cancel_unpaid(booking_id, payment_id, "Checkout session expired", reason="session_expired")
        return booking_id

    def _on_dispute_created(self, dispute: dict[str, Any]) -> str | None:
        payment_intent_id = dispute.get("payment_intent")
        payment = self.payments.get_by_payment_intent(payment_intent_id) if payment_intent_id else None
        booking_id = payment.booking_id if payment else None
        self.audit.record(
            action="payment.dispute_created",
            resource_type="payment",
            resource_id=payment.payment_id if payment else (payment_intent_id or dispute.get("id", "unknown")),
            actor=ACTOR,
            success=False,
            details={
                "dispute_id": dispute.get("id"),
                "booking_id": booking_id,
                "payment_intent_id": payment_intent_id,
                "amount": dispute.get("amount"),
                "reason": dispute.get("reason"),
                "requires_manual_review": True,
            },
        )
        logger.warning("Dispute %s opened for booking %s", dispute.get("id"), booking_id)
        return booking_id

    def _on_invoice(self, invoice: dict[str, Any]) -> str | None:
        logger.info("Invoice event for %s acknowledged (no subscriptions)", invoice.get("id"))
        return None

    # Transitions

    def _apply_payment_success(
        self,
        booking_id: str,
        payment_id: str | None,
        *,
        payment_intent_id: str | None,
        amount: int | None,
    ) -> None:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)
        payment = self._payment_for(booking_id, payment_id)

        if amount is not None and amount != payment.amount:
            self.audit.record(
                action="payment.amount_mismatch",
                resource_type="payment",
                resource_id=payment.payment_id,
                actor=ACTOR,
                success=False,
                details={"booking_id": booking_id, "expected": payment.amount, "received": amount},
            )

        self.payments.mark_completed(payment.payment_id, payment_intent_id)

        if booking.status == BookingStatus.CANCELLED:
            self._flag_late_payment(booking_id, payment.payment_id, payment_intent_id)
            return
        if booking.status not in UNPAID_STATUSES:
            logger.info("Booking %s already %s; payment event is a no-op", booking_id, booking.status.value)
            return

        try:
            self.bookings.transition(booking_id, BookingStatus.PAID, UNPAID_STATUSES, actor=ACTOR)
        except InvalidStateError:
            # Cancelled by the reaper between the read and the write
            current = self.bookings.get_or_raise(booking_id)
            if current.status == BookingStatus.CANCELLED:
                self._flag_late_payment(booking_id, payment.payment_id, payment_intent_id)

    def _cancel_unpaid(
        self, booking_id: str, payment_id: str | None, error: str, *, reason: str
    ) -> None:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)
        if booking.status not in UNPAID_STATUSES and booking.status != BookingStatus.CANCELLED:
            logger.info(
                "Booking %s is %s; ignoring %s", booking_id, booking.status.value, reason
            )
            return

        payment = self._payment_for(booking_id, payment_id)
        self.payments.mark_failed(payment.payment_id, error)
        released = self.store.release_for_booking(booking_id)
        self.bookings.transition(
            booking_id,
            BookingStatus.CANCELLED,
            UNPAID_STATUSES,
            actor=ACTOR,
            extra={"cancellation_reason": reason},
        )
        if released:
            self.audit.record(
                action="capacity.released",
                resource_type="booking",
                resource_id=booking_id,
                actor=ACTOR,
                details={"reason": reason, "assignments": [a.assignment_id for a in released]},
            )

    def _flag_late_payment(
        self, booking_id: str, payment_id: str, payment_intent_id: str | None
    ) -> None:
        self.audit.record(
            action="payment.late_for_cancelled_booking",
            resource_type="booking",
            resource_id=booking_id,
            actor=ACTOR,
            success=False,
            details={
                "payment_id": payment_id,
                "payment_intent_id": payment_intent_id,
                "requires_manual_review": True,
            },
        )
        logger.warning("Payment received for cancelled booking %s; flagged for refund review", booking_id)

    def _payment_for(self, booking_id: str, payment_id: str | None) -> "Payment":
        payment = self.payments.get(payment_id) if payment_id else None
        if payment is None:
            payment = self.payments.get_for_booking(booking_id)
        if payment is None:
            raise NotFoundError("payment", payment_id or booking_id)
        return payment


def _correlation(obj: dict[str, Any]) -> tuple[str | None, str | None]:
    metadata = obj.get("metadata") or {}
    booking_id = metadata.get("booking_id") or obj.get("client_reference_id")
    return booking_id, metadata.get("payment_id")
