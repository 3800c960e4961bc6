"""Checkout request and result models."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from .booking import LineItem


class CheckoutCustomer(BaseModel):
    """Customer block of a checkout request.

    Required fields are checked by the orchestrator after structural
    validation, so a missing name is reported as a customer error rather
    than a malformed request.
    """

    customer_id: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None


class ResourceSelection(BaseModel):
    """A request to hold units of one resource."""

    resource_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1, le=20, description="Units to hold")
    check_in: date | None = Field(default=None, description="Required for rooms and beds")
    check_out: date | None = Field(default=None, description="Exclusive; required for rooms and beds")


class AddonSelection(BaseModel):
    addon_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1, le=50)


class CheckoutRequest(BaseModel):
    """Everything needed to price, reserve and pay for a booking."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "items": [
                        {
                            "resource_id": "room-ocean-view",
                            "quantity": 1,
                            "check_in": "2026-07-01",
                            "check_out": "2026-07-05",
                        }
                    ],
                    "participants": 2,
                    "customer": {
                        "email": "guest@example.com",
                        "first_name": "Ana",
                        "last_name": "Silva",
                    },
                    "addons": [{"addon_id": "surf-lesson", "quantity": 2}],
                    "success_url": "https://example.com/booking/success?session_id={CHECKOUT_SESSION_ID}",
                    "cancel_url": "https://example.com/booking/cancel",
                }
            ]
        }
    )

    items: list[ResourceSelection] = Field(..., min_length=1)
    participants: int = Field(..., ge=1, le=50)
    customer: CheckoutCustomer
    addons: list[AddonSelection] = Field(default_factory=list)
    promo_code: str | None = None
    special_requests: str | None = Field(default=None, max_length=2000)
    success_url: str = Field(..., min_length=1)
    cancel_url: str = Field(..., min_length=1)


class PriceQuote(BaseModel):
    """Priced line items for a checkout request."""

    line_items: list[LineItem]
    subtotal: int
    discount_amount: int = 0
    promo_code: str | None = None
    total_amount: int
    currency: str


class CheckoutSession(BaseModel):
    """Result of a successful checkout creation."""

    checkout_url: str
    session_id: str
    booking_id: str
    expires_at: datetime
    customer_email: str
    amount_total: int = Field(..., description="Minor units")
    currency: str
