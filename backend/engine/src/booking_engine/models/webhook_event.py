"""Stripe webhook idempotency record and processing outcome."""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import WebhookOutcome, WebhookProcessingResult


class WebhookEventRecord(BaseModel):
    """One row per distinct Stripe event ID.

    Used for:
    - Idempotency: an event with processed=True is never re-applied
    - Auditing: attempts and the last error are kept for every delivery
    """

    event_id: str = Field(
        ...,
        description="Stripe event ID (evt_xxx)",
        examples=["evt_1ABC123DEF456"],
    )
    event_type: str = Field(
        ...,
        description="Stripe event type",
        examples=["checkout.session.completed", "payment_intent.payment_failed"],
    )
    processed: bool = False
    processing_result: WebhookProcessingResult = WebhookProcessingResult.IN_PROGRESS
    processing_attempts: int = Field(default=0, ge=0)
    last_attempt_at: datetime | None = None
    processed_at: datetime | None = None
    locked_until: int | None = Field(
        default=None,
        description="Epoch seconds until which the current attempt holds the event",
    )
    booking_id: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.processed or self.processing_result == WebhookProcessingResult.ABANDONED


class WebhookResult(BaseModel):
    """Response reported for a webhook delivery."""

    status: WebhookOutcome
    event_id: str | None = None
    event_type: str | None = None
    booking_id: str | None = None
    message: str | None = None
