"""Wires the engine services together over one DynamoDB and Stripe client."""

from dataclasses import dataclass

from booking_engine.config import EngineSettings, get_settings
from booking_engine.services.audit_service import AuditService
from booking_engine.services.availability import AvailabilityCalculator
from booking_engine.services.booking_service import BookingService
from booking_engine.services.capacity_store import CapacityStore
from booking_engine.services.catalog import CatalogService
from booking_engine.services.checkout import CheckoutOrchestrator
from booking_engine.services.dynamodb import DynamoDBService, get_dynamodb_service
from booking_engine.services.locks import LockService
from booking_engine.services.payment_service import PaymentService
from booking_engine.services.pricing import PricingService, PromoCodeValidator, TablePromoCodeValidator
from booking_engine.services.reaper import ReservationReaper
from booking_engine.services.reconciliation import ReconciliationService
from booking_engine.services.refund_service import RefundProcessor
from booking_engine.services.stripe_service import StripeService, get_stripe_service
from booking_engine.services.webhook_handler import WebhookProcessor


@dataclass
class BookingEngine:
    settings: EngineSettings
    db: DynamoDBService
    stripe: StripeService
    audit: AuditService
    catalog: CatalogService
    store: CapacityStore
    bookings: BookingService
    payments: PaymentService
    availability: AvailabilityCalculator
    pricing: PricingService
    checkout: CheckoutOrchestrator
    webhooks: WebhookProcessor
    refunds: RefundProcessor
    reaper: ReservationReaper
    reconciliation: ReconciliationService


def build_engine(
    db: DynamoDBService | None = None,
    stripe_service: StripeService | None = None,
    promo_validator: PromoCodeValidator | None = None,
    settings: EngineSettings | None = None,
) -> BookingEngine:
    """Build the engine; missing collaborators come from the shared singletons."""
    settings = settings or get_settings()
    db = db or get_dynamodb_service()
    stripe_service = stripe_service or get_stripe_service()

    audit = AuditService(db)
    catalog = CatalogService(db)
    store = CapacityStore(db)
    bookings = BookingService(db, audit)
    payments = PaymentService(db)
    pricing = PricingService(catalog, promo_validator or TablePromoCodeValidator(db), settings)

    return BookingEngine(
        settings=settings,
        db=db,
        stripe=stripe_service,
        audit=audit,
        catalog=catalog,
        store=store,
        bookings=bookings,
        payments=payments,
        availability=AvailabilityCalculator(catalog, store, settings),
        pricing=pricing,
        checkout=CheckoutOrchestrator(
            pricing=pricing,
            store=store,
            bookings=bookings,
            payments=payments,
            stripe_service=stripe_service,
            audit=audit,
            settings=settings,
        ),
        webhooks=WebhookProcessor(
            stripe_service=stripe_service,
            bookings=bookings,
            payments=payments,
            store=store,
            audit=audit,
            settings=settings,
        ),
        refunds=RefundProcessor(
            bookings=bookings,
            payments=payments,
            store=store,
            stripe_service=stripe_service,
            locks=LockService(db),
            audit=audit,
            settings=settings,
        ),
        reaper=ReservationReaper(
            bookings=bookings,
            payments=payments,
            store=store,
            stripe_service=stripe_service,
            audit=audit,
        ),
        reconciliation=ReconciliationService(
            payments=payments,
            bookings=bookings,
            store=store,
            stripe_service=stripe_service,
            audit=audit,
        ),
    )
