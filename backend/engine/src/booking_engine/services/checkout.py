"""Checkout orchestration: validate, price, reserve, then open a Stripe session.

Inventory is always reserved before the provider session exists, and any
failure after the first hold releases every hold taken by the same call.
"""

import datetime as dt
import hashlib
from typing import TYPE_CHECKING

from booking_engine.config import EngineSettings, get_settings
from booking_engine.models import (
    Booking,
    BookingError,
    BookingStatus,
    BookingValidationError,
    CapacityAssignment,
    CheckoutCustomer,
    CheckoutRequest,
    CheckoutSession,
    Customer,
    ProviderError,
)
from booking_engine.utils.logging import get_logger, log_payment_operation

from .booking_service import generate_booking_id
from .stripe_service import StripeServiceError

if TYPE_CHECKING:
    from .audit_service import AuditService
    from .booking_service import BookingService
    from .capacity_store import CapacityStore
    from .payment_service import PaymentService
    from .pricing import PricingService
    from .stripe_service import StripeService

logger = get_logger(__name__)

ACTOR = "system:checkout"


def customer_reference(email: str) -> str:
    """Stable customer ID derived from the email address."""
    digest = hashlib.sha256(email.strip().lower().encode()).hexdigest()
    return f"CUST-{digest[:12].upper()}"


def validate_customer(customer: CheckoutCustomer) -> Customer:
    """Check the customer block is complete.

    Raises:
        BookingValidationError: naming the first missing or invalid field.
    """
    email = (customer.email or "").strip()
    if not email:
        raise BookingValidationError("Customer email is required", field="customer.email")
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise BookingValidationError("Customer email is invalid", field="customer.email")
    for field in ("first_name", "last_name"):
        if not (getattr(customer, field) or "").strip():
            raise BookingValidationError(
                f"Customer {field.replace('_', ' ')} is required", field=f"customer.{field}"
            )
    return Customer(
        customer_id=customer.customer_id or customer_reference(email),
        email=email,
        first_name=customer.first_name.strip(),
        last_name=customer.last_name.strip(),
        phone=customer.phone,
        date_of_birth=customer.date_of_birth,
        emergency_contact_name=customer.emergency_contact_name,
        emergency_contact_phone=customer.emergency_contact_phone,
    )


class CheckoutOrchestrator:
    """Turns a CheckoutRequest into a reserved booking and a Stripe session."""

    def __init__(
        self,
        *,
        pricing: "PricingService",
        store: "CapacityStore",
        bookings: "BookingService",
        payments: "PaymentService",
        stripe_service: "StripeService",
        audit: "AuditService",
        settings: EngineSettings | None = None,
    ) -> None:
        self.pricing = pricing
        self.store = store
        self.bookings = bookings
        self.payments = payments
        self.stripe = stripe_service
        self.audit = audit
        self.settings = settings or get_settings()

    def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a booking and its checkout session.

        Raises:
            BookingValidationError: Incomplete customer, unknown resource, bad dates
            CapacityError: Any requested unit could not be reserved
            ProviderError: Stripe session creation failed; all holds were released
        """
        customer = validate_customer(request.customer)
        resources = self.pricing.load_resources(request)
        quote = self.pricing.quote(request, resources)

        now = dt.datetime.now(dt.UTC)
        booking_id = generate_booking_id(now)
        expires_at = now + dt.timedelta(minutes=self.settings.checkout_session_ttl_minutes)

        held: list[CapacityAssignment] = []
        try:
            for selection in request.items:
                resource = resources[selection.resource_id]
                for _ in range(selection.quantity):
                    held.append(
                        self.store.reserve(
                            resource, booking_id, selection.check_in, selection.check_out
                        )
                    )
        except BookingError as e:
            self._release(held)
            logger.warning("Checkout %s rejected: %s", booking_id, e.message)
            raise
        except Exception:
            logger.exception("Checkout %s failed while reserving capacity", booking_id)
            self._release(held)
            raise

        try:
            booking = self.bookings.create(
                Booking(
                    booking_id=booking_id,
                    customer_id=customer.customer_id,
                    customer=customer,
                    line_items=quote.line_items,
                    discount_amount=quote.discount_amount,
                    promo_code=quote.promo_code,
                    total_amount=quote.total_amount,
                    currency=quote.currency,
                    status=BookingStatus.DRAFT,
                    participants=request.participants,
                    special_requests=request.special_requests,
                    expires_at=expires_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            payment = self.payments.create_pending(
                booking_id=booking_id, amount=quote.total_amount, currency=quote.currency
            )
        except Exception:
            self._release(held)
            raise

        try:
            session = self.stripe.create_checkout_session(
                booking_id=booking_id,
                amount_cents=quote.total_amount,
                currency=quote.currency,
                description=", ".join(item.description for item in quote.line_items),
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                expires_at=expires_at,
                customer_email=customer.email,
                metadata={
                    "customer_id": customer.customer_id,
                    "resource_ids": ",".join(dict.fromkeys(booking.resource_ids)),
                    "guest_count": str(request.participants),
                    "payment_id": payment.payment_id,
                },
            )
        except StripeServiceError as e:
            self._abandon(booking_id, payment.payment_id, held, str(e))
            raise ProviderError(
                message="Could not create checkout session",
                stripe_error_code=e.stripe_error_code,
                retryable=e.retryable,
                details={"booking_id": booking_id},
            ) from e

        self.payments.set_provider_reference(payment.payment_id, session["session_id"])
        self.bookings.transition(
            booking_id,
            BookingStatus.PENDING,
            [BookingStatus.DRAFT],
            actor=ACTOR,
            extra={"checkout_session_id": session["session_id"]},
        )
        self.audit.record(
            action="checkout.session_created",
            resource_type="booking",
            resource_id=booking_id,
            actor=ACTOR,
            details={
                "session_id": session["session_id"],
                "amount": quote.total_amount,
                "currency": quote.currency,
                "assignments": [a.assignment_id for a in held],
            },
        )
        log_payment_operation(
            logger,
            "create_checkout",
            payment_id=payment.payment_id,
            booking_id=booking_id,
            amount_cents=quote.total_amount,
            status=BookingStatus.PENDING.value,
        )

        return CheckoutSession(
            checkout_url=session["checkout_url"],
            session_id=session["session_id"],
            booking_id=booking_id,
            expires_at=session.get("expires_at") or expires_at,
            customer_email=customer.email,
            amount_total=quote.total_amount,
            currency=quote.currency,
        )

    def _release(self, held: list[CapacityAssignment]) -> None:
        if held:
            self.store.release_many(held)
            logger.info("Released %d holds after failed checkout", len(held))

    def _abandon(
        self,
        booking_id: str,
        payment_id: str,
        held: list[CapacityAssignment],
        error: str,
    ) -> None:
        """Undo a checkout whose provider session could not be created."""
        self._release(held)
        self.bookings.transition(
            booking_id, BookingStatus.CANCELLED, [BookingStatus.DRAFT], actor=ACTOR
        )
        self.payments.mark_failed(payment_id, error)
        self.audit.record(
            action="checkout.session_failed",
            resource_type="booking",
            resource_id=booking_id,
            actor=ACTOR,
            success=False,
            details={"error": error, "released": len(held)},
        )
