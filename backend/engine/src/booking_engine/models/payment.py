"""Payment model for the monetary transaction tied to a booking."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .enums import PaymentStatus


class Payment(BaseModel):
    """The payment for one booking (one payment per booking).

    Amounts are stored in minor units. ``refunded_amount`` is a running
    total that only ever increases and never exceeds ``amount``.
    """

    payment_id: str = Field(..., description="Unique payment ID", examples=["PAY-3F9A1C2B7D4E"])
    booking_id: str = Field(..., description="Reference to Booking")
    amount: int = Field(..., ge=0, description="Amount in minor units")
    currency: str = Field(default="eur", description="Lowercase currency code")
    status: PaymentStatus = Field(..., description="Payment status")
    refunded_amount: int = Field(default=0, ge=0, description="Running refunded total")
    provider_reference: str | None = Field(
        default=None,
        description="Stripe Checkout Session ID (cs_xxx)",
        examples=["cs_test_abc123def456"],
    )
    payment_intent_id: str | None = Field(
        default=None,
        description="Stripe PaymentIntent ID (pi_xxx), known once payment completes",
        examples=["pi_3ABC123DEF456"],
    )
    refund_ids: list[str] = Field(
        default_factory=list,
        description="Stripe Refund IDs (re_xxx) applied to this payment",
    )
    error_message: str | None = Field(default=None, description="Error details if failed")
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @model_validator(mode="after")
    def _check_refund_bound(self) -> "Payment":
        if self.refunded_amount > self.amount:
            raise ValueError(
                f"refunded_amount {self.refunded_amount} exceeds amount {self.amount}"
            )
        return self

    @property
    def remaining_balance(self) -> int:
        """Amount still refundable, in minor units."""
        return self.amount - self.refunded_amount

    @property
    def is_fully_refunded(self) -> bool:
        return self.amount > 0 and self.refunded_amount == self.amount
