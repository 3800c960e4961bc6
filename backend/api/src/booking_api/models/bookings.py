"""Booking detail response models."""

from datetime import datetime

from pydantic import BaseModel, Field

from booking_engine.models import Booking, Payment, PaymentStatus


class PaymentSummary(BaseModel):
    payment_id: str
    amount: int = Field(..., description="Minor units")
    refunded_amount: int
    remaining_balance: int
    currency: str
    status: PaymentStatus
    completed_at: datetime | None = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentSummary":
        return cls(
            payment_id=payment.payment_id,
            amount=payment.amount,
            refunded_amount=payment.refunded_amount,
            remaining_balance=payment.remaining_balance,
            currency=payment.currency,
            status=payment.status,
            completed_at=payment.completed_at,
        )


class BookingDetailResponse(BaseModel):
    booking: Booking
    payment: PaymentSummary | None = None
    changed: bool | None = Field(
        default=None,
        description="For state-changing calls: False when the booking was already in the target status",
    )
