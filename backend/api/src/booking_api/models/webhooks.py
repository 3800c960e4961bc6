"""Webhook response model."""

from pydantic import BaseModel, ConfigDict, Field

from booking_engine.models import WebhookOutcome, WebhookResult


class WebhookResponse(BaseModel):
    """Acknowledgement returned to Stripe."""

    model_config = ConfigDict(use_enum_values=True)

    status: WebhookOutcome = Field(..., examples=["processed", "already_processed"])
    event_id: str | None = None
    event_type: str | None = None
    message: str | None = None

    @classmethod
    def from_result(cls, result: WebhookResult) -> "WebhookResponse":
        return cls(
            status=result.status,
            event_id=result.event_id,
            event_type=result.event_type,
            message=result.message,
        )
