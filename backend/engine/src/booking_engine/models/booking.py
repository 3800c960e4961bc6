"""Booking model and its line items.

Amounts are integer minor units (cents). The booking total is fixed at
creation; refunds are tracked on the Payment.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from .enums import BookingStatus, LineItemType


class Customer(BaseModel):
    """Customer details captured at checkout."""

    customer_id: str | None = Field(default=None, description="Customer reference")
    email: str = Field(..., description="Contact email", examples=["guest@example.com"])
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: str | None = None
    date_of_birth: date | None = None
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None


class LineItem(BaseModel):
    """One priced element of a booking."""

    item_type: LineItemType = Field(..., description="room, bed, camp_week or addon")
    reference_id: str = Field(..., description="Resource ID or add-on ID")
    description: str = Field(..., description="Human-readable label")
    quantity: int = Field(..., ge=1, description="Units (nights x units for rooms, seats, add-on count)")
    unit_price: int = Field(..., ge=0, description="Unit price in minor units")
    subtotal: int = Field(..., ge=0, description="quantity x unit_price in minor units")
    start_date: date | None = Field(default=None, description="First night / camp-week start")
    end_date: date | None = Field(default=None, description="Check-out date (exclusive)")

    @model_validator(mode="after")
    def _check_subtotal(self) -> "LineItem":
        if self.subtotal != self.quantity * self.unit_price:
            raise ValueError(
                f"subtotal {self.subtotal} != quantity {self.quantity} x unit_price {self.unit_price}"
            )
        return self


class Booking(BaseModel):
    """A reservation attempt progressing through the booking lifecycle.

    Never deleted; only transitioned.
    """

    booking_id: str = Field(..., description="Unique booking ID", examples=["BKG-2026-3F9A1C2B7D4E"])
    customer_id: str = Field(..., description="Customer reference")
    customer: Customer
    line_items: list[LineItem] = Field(..., min_length=1)
    discount_amount: int = Field(default=0, ge=0, description="Promo discount in minor units")
    promo_code: str | None = None
    total_amount: int = Field(..., ge=0, description="Total in minor units")
    currency: str = Field(default="eur", description="Lowercase ISO 4217 code")
    status: BookingStatus
    participants: int = Field(..., ge=1)
    special_requests: str | None = None
    checkout_session_id: str | None = Field(
        default=None,
        description="Stripe Checkout Session ID (cs_xxx)",
        examples=["cs_test_abc123def456"],
    )
    expires_at: datetime | None = Field(
        default=None,
        description="When an unpaid hold becomes reclaimable by the reaper",
    )
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_total(self) -> "Booking":
        subtotal = sum(item.subtotal for item in self.line_items)
        expected = max(0, subtotal - self.discount_amount)
        if self.total_amount != expected:
            raise ValueError(
                f"total_amount {self.total_amount} does not match line items "
                f"({subtotal}) minus discount ({self.discount_amount})"
            )
        return self

    @property
    def resource_ids(self) -> list[str]:
        """Inventory resources held by this booking, in line-item order."""
        return [
            item.reference_id
            for item in self.line_items
            if item.item_type != LineItemType.ADDON
        ]
