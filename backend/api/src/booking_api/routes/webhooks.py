"""Stripe webhook endpoint.

Receives signed payloads from Stripe, so it carries no other
authentication. Only POST is routed; other methods get 405.
"""

from fastapi import APIRouter, Depends, Request

from booking_api.dependencies import get_webhook_processor
from booking_api.models.common import ErrorResponse
from booking_api.models.webhooks import WebhookResponse
from booking_engine.services.webhook_handler import WebhookProcessor
from booking_engine.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhooks/stripe",
    summary="Receive Stripe events",
    response_model=WebhookResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid signature"},
        409: {"model": ErrorResponse, "description": "Event is being processed by another delivery"},
        500: {"model": ErrorResponse, "description": "Processing failed; Stripe will retry"},
    },
)
async def stripe_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookResponse:
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature") or request.headers.get("signature")
    result = processor.handle(payload, signature)
    return WebhookResponse.from_result(result)
