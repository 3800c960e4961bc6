"""Enumeration types for booking engine data models."""

from enum import Enum


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    DRAFT = "draft"  # Created, inventory tentatively held
    PENDING = "pending"  # Checkout session issued
    PAID = "paid"  # Provider confirmed full payment
    CONFIRMED = "confirmed"  # Staff/automation acknowledged a paid booking
    PARTIAL = "partial"  # A refund reduced the payment below full
    CANCELLED = "cancelled"  # Released before payment
    REFUNDED = "refunded"  # Fully refunded


class PaymentStatus(str, Enum):
    """Status of the payment tied to a booking."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ResourceType(str, Enum):
    """Kinds of inventory held in the capacity ledger."""

    ROOM = "room"
    BED = "bed"
    CAMP_WEEK = "camp_week"


class LineItemType(str, Enum):
    """Kinds of booking line items."""

    ROOM = "room"
    BED = "bed"
    CAMP_WEEK = "camp_week"
    ADDON = "addon"


class RefundReason(str, Enum):
    """Reasons accepted by the refund processor."""

    CUSTOMER_REQUEST = "customer_request"
    DUPLICATE = "duplicate"
    FRAUDULENT = "fraudulent"
    REQUESTED_BY_CUSTOMER = "requested_by_customer"
    OTHER = "other"

    def to_stripe_reason(self) -> str:
        """Map to one of the three reasons Stripe accepts."""
        if self in (RefundReason.DUPLICATE, RefundReason.FRAUDULENT):
            return self.value
        return "requested_by_customer"


class WebhookOutcome(str, Enum):
    """Result reported to the provider for a webhook delivery."""

    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    REJECTED = "rejected"


class WebhookProcessingResult(str, Enum):
    """State of an idempotency record after its latest attempt."""

    IN_PROGRESS = "in_progress"
    PROCESSED = "processed"
    FAILED = "failed"
    ABANDONED = "abandoned"


class DiscrepancyType(str, Enum):
    """Kinds of mismatch found by payment reconciliation."""

    AMOUNT_MISMATCH = "amount_mismatch"
    STATUS_MISMATCH = "status_mismatch"
    REFUND_MISMATCH = "refund_mismatch"
    MISSING_PAYMENT = "missing_payment"


class DiscrepancySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
