"""Booking records and their status machine.

Every transition is a conditional update on the current status, so a
transition applied twice (duplicate or out-of-order webhooks, a retried
reaper run) is a no-op instead of an overwrite.
"""

import datetime as dt
import uuid
from typing import TYPE_CHECKING, Any, Iterable

from boto3.dynamodb.conditions import Attr

from booking_engine.models import (
    Booking,
    BookingStatus,
    InvalidStateError,
    NotFoundError,
)
from booking_engine.utils.logging import get_logger

if TYPE_CHECKING:
    from .audit_service import AuditService
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)

# Statuses a refund may start from
REFUNDABLE_STATUSES = (BookingStatus.PAID, BookingStatus.CONFIRMED, BookingStatus.PARTIAL)
# Statuses that still hold unpaid inventory
UNPAID_STATUSES = (BookingStatus.DRAFT, BookingStatus.PENDING)


def generate_booking_id(now: dt.datetime | None = None) -> str:
    year = (now or dt.datetime.now(dt.UTC)).year
    return f"BKG-{year}-{uuid.uuid4().hex[:12].upper()}"


class BookingService:
    TABLE = "bookings"

    def __init__(self, db: "DynamoDBService", audit: "AuditService") -> None:
        self.db = db
        self.audit = audit

    def create(self, booking: Booking) -> Booking:
        """Store a new booking; the ID must be unused."""
        created = self.db.put_item(
            self.TABLE,
            self._to_item(booking),
            condition_expression="attribute_not_exists(booking_id)",
        )
        if not created:
            raise ValueError(f"Booking {booking.booking_id} already exists")
        logger.info(
            "Booking %s created: status=%s total=%d %s",
            booking.booking_id,
            booking.status.value,
            booking.total_amount,
            booking.currency,
        )
        return booking

    def get(self, booking_id: str) -> Booking | None:
        item = self.db.get_item(self.TABLE, {"booking_id": booking_id}, consistent_read=True)
        return self._from_item(item) if item else None

    def get_or_raise(self, booking_id: str) -> Booking:
        booking = self.get(booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)
        return booking

    def transition(
        self,
        booking_id: str,
        target: BookingStatus,
        allowed_from: Iterable[BookingStatus],
        *,
        actor: str = "system",
        extra: dict[str, Any] | None = None,
    ) -> tuple[Booking, bool]:
        """Move a booking to ``target`` if its current status allows it.

        Args:
            booking_id: Booking to transition
            target: New status
            allowed_from: Statuses the booking may currently be in
            actor: Recorded in the audit log
            extra: Additional attributes to set in the same write

        Returns:
            (booking, changed). ``changed`` is False when the booking was
            already in ``target``.

        Raises:
            NotFoundError: Unknown booking
            InvalidStateError: Current status is neither allowed nor the target
        """
        allowed = list(dict.fromkeys(allowed_from))
        now = dt.datetime.now(dt.UTC).isoformat()

        set_parts = ["#status = :target", "updated_at = :now"]
        values: dict[str, Any] = {":target": target.value, ":now": now}
        names = {"#status": "status"}
        for index, (key, value) in enumerate((extra or {}).items()):
            names[f"#x{index}"] = key
            values[f":x{index}"] = value
            set_parts.append(f"#x{index} = :x{index}")

        placeholders = []
        for index, status in enumerate(allowed):
            values[f":from{index}"] = status.value
            placeholders.append(f":from{index}")

        updated = self.db.update_item(
            self.TABLE,
            {"booking_id": booking_id},
            update_expression="SET " + ", ".join(set_parts),
            expression_attribute_values=values,
            expression_attribute_names=names,
            condition_expression=f"attribute_exists(booking_id) AND #status IN ({', '.join(placeholders)})",
        )

        if updated is None:
            current = self.get(booking_id)
            if current is None:
                raise NotFoundError("booking", booking_id)
            if current.status == target:
                logger.info("Booking %s already %s", booking_id, target.value)
                return current, False
            raise InvalidStateError(booking_id, current.status.value, target.value)

        booking = self._from_item(updated)
        self.audit.record(
            action="booking.status_changed",
            resource_type="booking",
            resource_id=booking_id,
            actor=actor,
            details={"status": target.value, "allowed_from": [s.value for s in allowed]},
        )
        logger.info("Booking %s -> %s (by %s)", booking_id, target.value, actor)
        return booking, True

    def confirm(self, booking_id: str, actor: str = "staff") -> tuple[Booking, bool]:
        """Acknowledge a paid booking. Confirming twice is a no-op."""
        return self.transition(
            booking_id, BookingStatus.CONFIRMED, [BookingStatus.PAID], actor=actor
        )

    def list_expired(self, now: dt.datetime, limit: int | None = None) -> list[Booking]:
        """Unpaid bookings whose hold expired before ``now``, oldest first."""
        cutoff = int(now.timestamp())
        expired: list[Booking] = []
        for status in UNPAID_STATUSES:
            items = self.db.query_by_gsi(
                self.TABLE,
                "status-index",
                "status",
                status.value,
                filter_expression=Attr("expires_at_ts").lt(cutoff),
            )
            expired.extend(self._from_item(item) for item in items)
        expired.sort(key=lambda b: b.expires_at or b.created_at)
        return expired[:limit] if limit else expired

    # Conversion helpers

    def _to_item(self, booking: Booking) -> dict[str, Any]:
        item = booking.model_dump(mode="json", exclude_none=True)
        if booking.expires_at:
            item["expires_at_ts"] = int(booking.expires_at.timestamp())
        return item

    def _from_item(self, item: dict[str, Any]) -> Booking:
        data = {k: v for k, v in item.items() if k != "expires_at_ts"}
        return Booking.model_validate(data)
