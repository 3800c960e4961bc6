"""Refund endpoint."""

from fastapi import APIRouter, Depends, Header

from booking_api.dependencies import get_refund_processor
from booking_api.models.common import ErrorResponse
from booking_engine.models import RefundRequest, RefundResult
from booking_engine.services.refund_service import RefundProcessor

router = APIRouter(tags=["refunds"])


@router.post(
    "/refunds",
    summary="Refund a booking",
    description="""
Refunds the given amount (minor units), or the full remaining balance when
no amount is given. Requests above the remaining balance are capped; the
response reports `capped` and the amount actually refunded.
""",
    response_model=RefundResult,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid amount or booking not refundable"},
        404: {"model": ErrorResponse, "description": "Booking not found"},
        409: {"model": ErrorResponse, "description": "A refund is already in progress"},
        502: {"model": ErrorResponse, "description": "Stripe rejected the refund"},
    },
)
async def create_refund(
    body: RefundRequest,
    x_actor: str | None = Header(default=None, description="Staff member issuing the refund"),
    refunds: RefundProcessor = Depends(get_refund_processor),
) -> RefundResult:
    actor = f"staff:{x_actor}" if x_actor else "staff"
    return refunds.refund(body, actor=actor)
