"""API request/response models.

Domain models (Booking, Payment, CheckoutRequest, ...) live in
booking_engine.models; this package only holds HTTP-layer shapes.
"""

from booking_api.models.admin import ReaperRunRequest, ReaperRunResponse
from booking_api.models.bookings import BookingDetailResponse, PaymentSummary
from booking_api.models.common import ErrorResponse, PingResponse
from booking_api.models.webhooks import WebhookResponse

__all__ = [
    "BookingDetailResponse",
    "ErrorResponse",
    "PaymentSummary",
    "PingResponse",
    "ReaperRunRequest",
    "ReaperRunResponse",
    "WebhookResponse",
]
