"""Standard error codes for the booking engine.

Every user-visible failure carries a stable machine-readable ErrorCode plus
a human-readable message. Internal exception details never reach the
response body; they are logged and, where relevant, written to the audit
log.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Stable error codes returned to callers."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    CAPACITY_ERROR = "CAPACITY_ERROR"
    NOT_FOUND = "NOT_FOUND"
    NOT_REFUNDABLE = "NOT_REFUNDABLE"
    INVALID_STATE = "INVALID_STATE"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    STRIPE_ERROR = "STRIPE_ERROR"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    REFUND_IN_PROGRESS = "REFUND_IN_PROGRESS"
    EVENT_IN_PROGRESS = "EVENT_IN_PROGRESS"
    WEBHOOK_PROCESSING_FAILED = "WEBHOOK_PROCESSING_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "Request validation failed",
    ErrorCode.CAPACITY_ERROR: "Insufficient capacity for the requested dates",
    ErrorCode.NOT_FOUND: "Resource not found",
    ErrorCode.NOT_REFUNDABLE: "Booking is not eligible for a refund",
    ErrorCode.INVALID_STATE: "Booking is not in a state that allows this action",
    ErrorCode.INVALID_SIGNATURE: "Invalid signature",
    ErrorCode.STRIPE_ERROR: "Payment provider request failed",
    ErrorCode.CONCURRENCY_CONFLICT: "The record was modified concurrently",
    ErrorCode.REFUND_IN_PROGRESS: "A refund for this booking is already in progress",
    ErrorCode.EVENT_IN_PROGRESS: "This event is already being processed",
    ErrorCode.WEBHOOK_PROCESSING_FAILED: "Webhook event could not be processed",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred",
}

# Recovery suggestions for API clients
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "Correct the request and try again",
    ErrorCode.CAPACITY_ERROR: "Choose different dates or fewer participants",
    ErrorCode.NOT_FOUND: "Verify the identifier and try again",
    ErrorCode.NOT_REFUNDABLE: "Only paid or confirmed bookings with a remaining balance can be refunded",
    ErrorCode.INVALID_STATE: "Reload the booking to see its current status",
    ErrorCode.INVALID_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.STRIPE_ERROR: "Try again later or contact support",
    ErrorCode.CONCURRENCY_CONFLICT: "Retry the request",
    ErrorCode.REFUND_IN_PROGRESS: "Wait for the current refund to finish before retrying",
    ErrorCode.EVENT_IN_PROGRESS: "The provider will redeliver the event",
    ErrorCode.WEBHOOK_PROCESSING_FAILED: "The provider will redeliver the event",
    ErrorCode.INTERNAL_ERROR: "Please try again later or contact support",
}


class ErrorResponse(BaseModel):
    """Standard error body returned by every endpoint."""

    model_config = ConfigDict(use_enum_values=True)

    success: bool = False
    error: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, Any]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            message: Overrides the default message for the code
            details: Optional additional context about the error
        """
        return cls(
            error=code,
            message=message or ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class BookingError(Exception):
    """Base exception raised by booking engine operations.

    Can be caught and converted to an ErrorResponse for API responses.
    """

    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message or ERROR_MESSAGES[self.code]
        self.recovery = ERROR_RECOVERY[self.code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.message, self.details)


class BookingValidationError(BookingError):
    """Malformed or missing input. Never mutates state."""

    default_code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if field:
            merged["field"] = field
        self.field = field
        super().__init__(message=message, details=merged or None)


class CapacityError(BookingError):
    """Insufficient inventory for a reservation."""

    default_code = ErrorCode.CAPACITY_ERROR


class NotFoundError(BookingError):
    """Unknown booking, payment, resource or assignment."""

    default_code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message=f"{entity.capitalize()} {entity_id} not found",
            details={f"{entity}_id": entity_id},
        )


class NotRefundableError(BookingError):
    default_code = ErrorCode.NOT_REFUNDABLE


class InvalidStateError(BookingError):
    """A transition was requested from a status that does not allow it."""

    default_code = ErrorCode.INVALID_STATE

    def __init__(self, booking_id: str, current: str, target: str):
        super().__init__(
            message=f"Booking {booking_id} cannot move from {current} to {target}",
            details={"booking_id": booking_id, "current_status": current, "target_status": target},
        )


class SignatureError(BookingError):
    """Webhook payload could not be verified. Rejected before idempotency."""

    default_code = ErrorCode.INVALID_SIGNATURE


class ProviderError(BookingError):
    """Payment provider failure after the client's own retry."""

    default_code = ErrorCode.STRIPE_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        stripe_error_code: Optional[str] = None,
        retryable: bool = False,
        details: Optional[dict[str, Any]] = None,
    ):
        self.stripe_error_code = stripe_error_code
        self.retryable = retryable
        merged = dict(details or {})
        merged["retryable"] = retryable
        if stripe_error_code:
            merged["stripe_error_code"] = stripe_error_code
        super().__init__(message=message, details=merged)


class ConcurrencyConflict(BookingError):
    """Lost an optimistic-lock race after bounded retries."""

    default_code = ErrorCode.CONCURRENCY_CONFLICT


class WebhookProcessingError(BookingError):
    """A verified event failed below the retry ceiling; the provider should redeliver."""

    default_code = ErrorCode.WEBHOOK_PROCESSING_FAILED


# Stripe error codes that indicate the caller should retry
STRIPE_RETRYABLE_ERRORS: set[str] = {
    "processing_error",
    "rate_limit",
    "lock_timeout",
    "api_connection_error",
}


def is_stripe_error_retryable(stripe_error_code: Optional[str]) -> bool:
    """Check if a Stripe error is likely transient and retryable.

    Args:
        stripe_error_code: The Stripe error code.

    Returns:
        True if the error may be resolved by retrying.
    """
    return stripe_error_code in STRIPE_RETRYABLE_ERRORS if stripe_error_code else False
