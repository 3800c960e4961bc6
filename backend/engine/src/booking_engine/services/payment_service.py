"""Payment records and their guarded updates.

Handles:
- Creating the pending payment for a new booking
- Idempotent completion and failure from webhook events
- Applying refunds with an optimistic check on the running refunded total
"""

import datetime as dt
import uuid
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr

from booking_engine.models import NotFoundError, Payment, PaymentStatus
from booking_engine.utils.logging import get_logger, log_payment_operation
from booking_engine.utils.retry import OptimisticLockError

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)


class PaymentService:
    """Persistence for Payment records.

    Usage:
        payments = PaymentService(db)
        payment = payments.create_pending(booking_id="BKG-2026-ABC123", amount=112500, currency="eur")
        payments.mark_completed(payment.payment_id, payment_intent_id="pi_123")
    """

    TABLE = "payments"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def create_pending(self, *, booking_id: str, amount: int, currency: str) -> Payment:
        now = dt.datetime.now(dt.UTC)
        payment = Payment(
            payment_id=f"PAY-{uuid.uuid4().hex[:12].upper()}",
            booking_id=booking_id,
            amount=amount,
            currency=currency.lower(),
            status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.db.put_item(
            self.TABLE,
            self._to_item(payment),
            condition_expression="attribute_not_exists(payment_id)",
        )
        log_payment_operation(
            logger,
            "create_payment",
            payment_id=payment.payment_id,
            booking_id=booking_id,
            amount_cents=amount,
            status=payment.status.value,
        )
        return payment

    def get(self, payment_id: str) -> Payment | None:
        item = self.db.get_item(self.TABLE, {"payment_id": payment_id}, consistent_read=True)
        return self._from_item(item) if item else None

    def get_or_raise(self, payment_id: str) -> Payment:
        payment = self.get(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        return payment

    def get_for_booking(self, booking_id: str) -> Payment | None:
        """The payment for a booking (one payment per booking).

        The GSI read is eventually consistent, so the row is re-read by key.
        """
        items = self.db.query_by_gsi(self.TABLE, "booking-index", "booking_id", booking_id, limit=1)
        if not items:
            return None
        return self.get(items[0]["payment_id"])

    def get_by_provider_reference(self, session_id: str) -> Payment | None:
        items = self.db.query_by_gsi(
            self.TABLE, "provider-reference-index", "provider_reference", session_id, limit=1
        )
        if not items:
            return None
        return self.get(items[0]["payment_id"])

    def get_by_payment_intent(self, payment_intent_id: str) -> Payment | None:
        items = self.db.query_by_gsi(
            self.TABLE, "payment-intent-index", "payment_intent_id", payment_intent_id, limit=1
        )
        if not items:
            return None
        return self.get(items[0]["payment_id"])

    def set_provider_reference(self, payment_id: str, session_id: str) -> Payment:
        updated = self.db.update_item(
            self.TABLE,
            {"payment_id": payment_id},
            update_expression="SET provider_reference = :ref, updated_at = :now",
            expression_attribute_values={
                ":ref": session_id,
                ":now": dt.datetime.now(dt.UTC).isoformat(),
            },
            condition_expression="attribute_exists(payment_id)",
        )
        if updated is None:
            raise NotFoundError("payment", payment_id)
        return self._from_item(updated)

    def mark_completed(
        self, payment_id: str, payment_intent_id: str | None = None
    ) -> tuple[Payment, bool]:
        """Record a successful charge.

        Returns:
            (payment, changed); changed is False if it was already completed
            or has since been refunded.
        """
        now = dt.datetime.now(dt.UTC).isoformat()
        set_parts = ["#status = :completed", "updated_at = :now", "completed_at = :now"]
        values: dict[str, Any] = {
            ":completed": PaymentStatus.COMPLETED.value,
            ":pending": PaymentStatus.PENDING.value,
            ":failed": PaymentStatus.FAILED.value,
            ":now": now,
        }
        if payment_intent_id:
            set_parts.append("payment_intent_id = :pi")
            values[":pi"] = payment_intent_id

        updated = self.db.update_item(
            self.TABLE,
            {"payment_id": payment_id},
            update_expression="SET " + ", ".join(set_parts) + " REMOVE error_message",
            expression_attribute_values=values,
            expression_attribute_names={"#status": "status"},
            condition_expression="attribute_exists(payment_id) AND #status IN (:pending, :failed)",
        )
        if updated is None:
            current = self.get_or_raise(payment_id)
            if payment_intent_id and not current.payment_intent_id:
                current = self._attach_payment_intent(payment_id, payment_intent_id)
            return current, False

        payment = self._from_item(updated)
        log_payment_operation(
            logger,
            "mark_completed",
            payment_id=payment_id,
            booking_id=payment.booking_id,
            amount_cents=payment.amount,
            status=payment.status.value,
        )
        return payment, True

    def mark_failed(self, payment_id: str, error_message: str) -> tuple[Payment, bool]:
        """Record a failed charge. Only a pending payment can fail."""
        updated = self.db.update_item(
            self.TABLE,
            {"payment_id": payment_id},
            update_expression="SET #status = :failed, error_message = :error, updated_at = :now",
            expression_attribute_values={
                ":failed": PaymentStatus.FAILED.value,
                ":pending": PaymentStatus.PENDING.value,
                ":error": error_message,
                ":now": dt.datetime.now(dt.UTC).isoformat(),
            },
            expression_attribute_names={"#status": "status"},
            condition_expression="attribute_exists(payment_id) AND #status = :pending",
        )
        if updated is None:
            return self.get_or_raise(payment_id), False

        payment = self._from_item(updated)
        log_payment_operation(
            logger,
            "mark_failed",
            payment_id=payment_id,
            booking_id=payment.booking_id,
            status=payment.status.value,
            error=error_message,
        )
        return payment, True

    def apply_refund(self, payment: Payment, amount: int, refund_id: str) -> Payment:
        """Add ``amount`` to the running refunded total.

        ``payment`` must be a fresh read. The write is conditioned on the
        refunded total still matching it and on the new total staying
        within the payment amount.

        Raises:
            OptimisticLockError: The refunded total changed since ``payment`` was read.
        """
        new_total = payment.refunded_amount + amount
        status = PaymentStatus.REFUNDED if new_total == payment.amount else payment.status
        updated = self.db.update_item(
            self.TABLE,
            {"payment_id": payment.payment_id},
            update_expression=(
                "SET refunded_amount = :new_total, #status = :status, updated_at = :now, "
                "refund_ids = list_append(if_not_exists(refund_ids, :empty), :refund_ids)"
            ),
            expression_attribute_values={
                ":expected": payment.refunded_amount,
                ":new_total": new_total,
                ":status": status.value,
                ":now": dt.datetime.now(dt.UTC).isoformat(),
                ":empty": [],
                ":refund_ids": [refund_id],
            },
            expression_attribute_names={"#status": "status", "#amount": "amount"},
            condition_expression="refunded_amount = :expected AND #amount >= :new_total",
        )
        if updated is None:
            raise OptimisticLockError(payment.payment_id)

        refreshed = self._from_item(updated)
        log_payment_operation(
            logger,
            "apply_refund",
            payment_id=payment.payment_id,
            booking_id=payment.booking_id,
            amount_cents=amount,
            status=refreshed.status.value,
            refunded_total=new_total,
        )
        return refreshed

    def correct(self, payment: Payment, changes: dict[str, Any]) -> Payment | None:
        """Reconciliation write; conditioned on status and refunded total being unchanged since read.

        Returns None if the payment moved on in the meantime.
        """
        names = {f"#{key}": key for key in changes}
        values: dict[str, Any] = {f":{key}": value for key, value in changes.items()}
        names["#status"] = "status"
        values[":seen_status"] = payment.status.value
        values[":seen_refunded"] = payment.refunded_amount
        values[":now"] = dt.datetime.now(dt.UTC).isoformat()
        set_parts = [f"#{key} = :{key}" for key in changes] + ["updated_at = :now"]
        updated = self.db.update_item(
            self.TABLE,
            {"payment_id": payment.payment_id},
            update_expression="SET " + ", ".join(set_parts),
            expression_attribute_values=values,
            expression_attribute_names=names,
            condition_expression="#status = :seen_status AND refunded_amount = :seen_refunded",
        )
        return self._from_item(updated) if updated else None

    def list_in_range(
        self, date_from: dt.datetime, date_to: dt.datetime, limit: int
    ) -> list[Payment]:
        """Payments with a known PaymentIntent created within the window."""
        items = self.db.scan(
            self.TABLE,
            filter_expression=(
                Attr("created_at_ts").between(int(date_from.timestamp()), int(date_to.timestamp()))
                & Attr("payment_intent_id").exists()
            ),
        )
        payments = sorted((self._from_item(item) for item in items), key=lambda p: p.created_at)
        return payments[:limit]

    def _attach_payment_intent(self, payment_id: str, payment_intent_id: str) -> Payment:
        updated = self.db.update_item(
            self.TABLE,
            {"payment_id": payment_id},
            update_expression="SET payment_intent_id = :pi",
            expression_attribute_values={":pi": payment_intent_id},
            condition_expression="attribute_not_exists(payment_intent_id)",
        )
        return self._from_item(updated) if updated else self.get_or_raise(payment_id)

    # Conversion helpers

    def _to_item(self, payment: Payment) -> dict[str, Any]:
        item = payment.model_dump(mode="json", exclude_none=True)
        item["created_at_ts"] = int(payment.created_at.timestamp())
        return item

    def _from_item(self, item: dict[str, Any]) -> Payment:
        return Payment.model_validate({k: v for k, v in item.items() if k != "created_at_ts"})
