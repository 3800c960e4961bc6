"""Reclaims inventory held by unpaid bookings whose checkout expired."""

import datetime as dt
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from booking_engine.models import BookingError, BookingStatus, InvalidStateError
from booking_engine.utils.logging import get_logger

from .booking_service import UNPAID_STATUSES
from .stripe_service import StripeServiceError

if TYPE_CHECKING:
    from .audit_service import AuditService
    from .booking_service import BookingService
    from .capacity_store import CapacityStore
    from .payment_service import PaymentService
    from .stripe_service import StripeService

logger = get_logger(__name__)

ACTOR = "system:reaper"


@dataclass
class ReapResult:
    checked: int = 0
    cancelled: list[str] = field(default_factory=list)
    released_assignments: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "cancelled": self.cancelled,
            "cancelled_count": len(self.cancelled),
            "released_assignments": self.released_assignments,
            "errors": self.errors,
        }


class ReservationReaper:
    """Cancels expired draft/pending bookings and releases their holds."""

    def __init__(
        self,
        *,
        bookings: "BookingService",
        payments: "PaymentService",
        store: "CapacityStore",
        stripe_service: "StripeService",
        audit: "AuditService",
    ) -> None:
        self.bookings = bookings
        self.payments = payments
        self.store = store
        self.stripe = stripe_service
        self.audit = audit

    def reap_expired(self, now: dt.datetime | None = None, limit: int | None = None) -> ReapResult:
        """Cancel every unpaid booking whose ``expires_at`` is before ``now``.

        A failure on one booking is recorded and does not stop the run.
        """
        now = now or dt.datetime.now(dt.UTC)
        expired = self.bookings.list_expired(now, limit=limit)
        result = ReapResult(checked=len(expired))

        for booking in expired:
            try:
                released = self._reap(booking.booking_id, booking.checkout_session_id)
            except BookingError as e:
                logger.error("Reaper could not cancel %s: %s", booking.booking_id, e.message)
                result.errors[booking.booking_id] = e.message
                continue
            except Exception as e:
                logger.exception("Reaper failed on %s", booking.booking_id)
                result.errors[booking.booking_id] = str(e)
                continue
            if released is not None:
                result.cancelled.append(booking.booking_id)
                result.released_assignments += released

        logger.info(
            "Reaper run: %d expired, %d cancelled, %d assignments released, %d errors",
            result.checked,
            len(result.cancelled),
            result.released_assignments,
            len(result.errors),
        )
        return result

    def _reap(self, booking_id: str, session_id: str | None) -> int | None:
        """Returns the number of released assignments, or None if the booking moved on.

        Holds are released before the booking is cancelled, so a failed
        release leaves the booking unpaid and picked up by the next run.
        """
        # Stop the session first so it cannot be paid after the release
        if session_id:
            try:
                self.stripe.expire_checkout_session(session_id)
            except StripeServiceError as e:
                logger.warning("Could not expire session %s for %s: %s", session_id, booking_id, e)

        current = self.bookings.get(booking_id)
        if current is None or current.status not in UNPAID_STATUSES:
            logger.info("Booking %s no longer unpaid; skipping", booking_id)
            return None

        released = self.store.release_for_booking(booking_id)
        try:
            _, changed = self.bookings.transition(
                booking_id,
                BookingStatus.CANCELLED,
                UNPAID_STATUSES,
                actor=ACTOR,
                extra={"cancellation_reason": "checkout_expired"},
            )
        except InvalidStateError:
            logger.error("Booking %s was paid while being reaped; holds already released", booking_id)
            self.audit.record(
                action="reservation.released_for_paid_booking",
                resource_type="booking",
                resource_id=booking_id,
                actor=ACTOR,
                success=False,
                details={
                    "session_id": session_id,
                    "released_assignments": [a.assignment_id for a in released],
                },
            )
            return None
        if not changed:
            return None

        payment = self.payments.get_for_booking(booking_id)
        if payment is not None:
            self.payments.mark_failed(payment.payment_id, "Checkout expired")

        self.audit.record(
            action="reservation.expired",
            resource_type="booking",
            resource_id=booking_id,
            actor=ACTOR,
            details={
                "session_id": session_id,
                "released_assignments": [a.assignment_id for a in released],
            },
        )
        return len(released)
