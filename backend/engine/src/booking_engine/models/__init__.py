"""Pydantic models for booking engine data entities."""

from .audit import AuditLogEntry
from .booking import Booking, Customer, LineItem
from .capacity import (
    CAMP_WEEK_SLOT,
    Addon,
    AvailabilityReport,
    AvailabilitySummary,
    CapacityAssignment,
    DateAvailability,
    Resource,
)
from .checkout import (
    AddonSelection,
    CheckoutCustomer,
    CheckoutRequest,
    CheckoutSession,
    PriceQuote,
    ResourceSelection,
)
from .enums import (
    BookingStatus,
    DiscrepancySeverity,
    DiscrepancyType,
    LineItemType,
    PaymentStatus,
    RefundReason,
    ResourceType,
    WebhookOutcome,
    WebhookProcessingResult,
)
from .errors import (
    BookingError,
    BookingValidationError,
    CapacityError,
    ConcurrencyConflict,
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    ErrorCode,
    ErrorResponse,
    InvalidStateError,
    NotFoundError,
    NotRefundableError,
    ProviderError,
    STRIPE_RETRYABLE_ERRORS,
    SignatureError,
    WebhookProcessingError,
    is_stripe_error_retryable,
)
from .payment import Payment
from .reconciliation import (
    Discrepancy,
    ReconciliationReport,
    ReconciliationRequest,
    ReconciliationSummary,
)
from .refund import RefundRequest, RefundResult
from .webhook_event import WebhookEventRecord, WebhookResult

__all__ = [
    # Enums
    "BookingStatus",
    "DiscrepancySeverity",
    "DiscrepancyType",
    "LineItemType",
    "PaymentStatus",
    "RefundReason",
    "ResourceType",
    "WebhookOutcome",
    "WebhookProcessingResult",
    # Booking
    "Booking",
    "Customer",
    "LineItem",
    # Payment
    "Payment",
    # Capacity
    "CAMP_WEEK_SLOT",
    "Addon",
    "AvailabilityReport",
    "AvailabilitySummary",
    "CapacityAssignment",
    "DateAvailability",
    "Resource",
    # Checkout
    "AddonSelection",
    "CheckoutCustomer",
    "CheckoutRequest",
    "CheckoutSession",
    "PriceQuote",
    "ResourceSelection",
    # Refund
    "RefundRequest",
    "RefundResult",
    # Webhooks
    "WebhookEventRecord",
    "WebhookResult",
    # Audit
    "AuditLogEntry",
    # Reconciliation
    "Discrepancy",
    "ReconciliationReport",
    "ReconciliationRequest",
    "ReconciliationSummary",
    # Errors
    "BookingError",
    "BookingValidationError",
    "CapacityError",
    "ConcurrencyConflict",
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "ErrorCode",
    "ErrorResponse",
    "InvalidStateError",
    "NotFoundError",
    "NotRefundableError",
    "ProviderError",
    "STRIPE_RETRYABLE_ERRORS",
    "SignatureError",
    "WebhookProcessingError",
    "is_stripe_error_retryable",
]
