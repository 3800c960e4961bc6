"""Checkout endpoint: reserve inventory and open a Stripe Checkout session."""

from fastapi import APIRouter, Depends

from booking_api.dependencies import get_checkout_orchestrator
from booking_api.models.common import ErrorResponse
from booking_engine.models import CheckoutRequest, CheckoutSession
from booking_engine.services.checkout import CheckoutOrchestrator

router = APIRouter(tags=["checkout"])


@router.post(
    "/checkout",
    summary="Create a checkout session",
    description="""
Prices the requested rooms, camp weeks and add-ons, holds the inventory and
returns a Stripe-hosted checkout URL. The hold expires with the session.

**Notes:**
- Amounts are in minor units (e.g., 15000 = 150.00 EUR)
- check_out is exclusive
""",
    response_model=CheckoutSession,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request or customer data"},
        409: {"model": ErrorResponse, "description": "Insufficient capacity"},
        502: {"model": ErrorResponse, "description": "Stripe unavailable"},
    },
)
async def create_checkout(
    body: CheckoutRequest,
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
) -> CheckoutSession:
    return orchestrator.create_checkout(body)
