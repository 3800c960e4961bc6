"""Refund request and result models."""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import BookingStatus, RefundReason


class RefundRequest(BaseModel):
    booking_id: str = Field(..., min_length=1)
    amount: int | None = Field(
        default=None,
        gt=0,
        description="Minor units; omitted means the full remaining balance",
    )
    reason: RefundReason = RefundReason.CUSTOMER_REQUEST
    notes: str | None = Field(default=None, max_length=1000)


class RefundResult(BaseModel):
    """Outcome of an applied refund.

    ``amount_refunded`` is the amount actually refunded, which may be less
    than ``requested_amount`` when the request exceeded the remaining balance.
    """

    refund_id: str
    booking_id: str
    payment_id: str
    amount_refunded: int
    requested_amount: int | None = None
    capped: bool = False
    refunded_total: int
    remaining_balance: int
    currency: str
    status: str = Field(..., description="Stripe refund status, e.g. succeeded or pending")
    booking_status: BookingStatus
    processed_at: datetime
