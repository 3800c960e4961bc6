"""FastAPI dependency providers for engine services.

Services are built once per process (``@lru_cache``) on top of the shared
DynamoDB and Stripe singletons.

Usage in routes:
    from booking_api.dependencies import get_refund_processor

    @router.post("/refunds")
    async def create_refund(
        body: RefundRequest,
        refunds: RefundProcessor = Depends(get_refund_processor),
    ):
        ...

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from fastapi import Depends

from booking_engine.engine import BookingEngine, build_engine
from booking_engine.services.availability import AvailabilityCalculator
from booking_engine.services.booking_service import BookingService
from booking_engine.services.checkout import CheckoutOrchestrator
from booking_engine.services.payment_service import PaymentService
from booking_engine.services.reaper import ReservationReaper
from booking_engine.services.reconciliation import ReconciliationService
from booking_engine.services.refund_service import RefundProcessor
from booking_engine.services.webhook_handler import WebhookProcessor


@lru_cache
def get_engine() -> BookingEngine:
    return build_engine()


def get_availability_calculator(engine: BookingEngine = Depends(get_engine)) -> AvailabilityCalculator:
    return engine.availability


def get_checkout_orchestrator(engine: BookingEngine = Depends(get_engine)) -> CheckoutOrchestrator:
    return engine.checkout


def get_webhook_processor(engine: BookingEngine = Depends(get_engine)) -> WebhookProcessor:
    return engine.webhooks


def get_refund_processor(engine: BookingEngine = Depends(get_engine)) -> RefundProcessor:
    return engine.refunds


def get_booking_service(engine: BookingEngine = Depends(get_engine)) -> BookingService:
    return engine.bookings


def get_payment_service(engine: BookingEngine = Depends(get_engine)) -> PaymentService:
    return engine.payments


def get_reaper(engine: BookingEngine = Depends(get_engine)) -> ReservationReaper:
    return engine.reaper


def get_reconciliation_service(engine: BookingEngine = Depends(get_engine)) -> ReconciliationService:
    return engine.reconciliation


def reset_services() -> None:
    """Clear all cached service instances.

    Also resets the DynamoDB, SSM and Stripe singletons so the next request
    builds fresh clients (inside a moto context in tests).
    """
    from booking_engine.services.dynamodb import reset_dynamodb_service
    from booking_engine.services.ssm_service import get_ssm_service
    from booking_engine.services.stripe_service import get_stripe_service

    get_engine.cache_clear()
    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()
    reset_dynamodb_service()
