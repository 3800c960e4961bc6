"""Authoritative inventory ledger.

The ``capacity-ledger`` table holds one counter per (resource, slot), where a
slot is an ISO date for rooms and beds, or ``week`` for a camp week. The
counter always equals the number of active assignments covering that slot,
because it is only ever changed in the same transaction that inserts or
releases an assignment.

Reserve re-checks ``booked < capacity`` for every slot inside that
transaction, so two callers that both read a stale "1 remaining" cannot both
succeed.
"""

import datetime as dt
import uuid
from typing import TYPE_CHECKING, Any

from booking_engine.models import (
    CAMP_WEEK_SLOT,
    BookingValidationError,
    CapacityAssignment,
    CapacityError,
    NotFoundError,
    Resource,
    ResourceType,
)
from booking_engine.utils.logging import get_logger, log_capacity_operation
from booking_engine.utils.retry import OptimisticLockError, retry_on_conflict

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)

TRANSACTION_CONFLICT = "TransactionConflict"
CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailed"


def date_range(start: dt.date, end: dt.date) -> list[dt.date]:
    """Dates in [start, end)."""
    return [start + dt.timedelta(days=i) for i in range((end - start).days)]


def slots_for(resource: Resource, start_date: dt.date | None, end_date: dt.date | None) -> list[str]:
    """Ledger slots an assignment of ``resource`` would consume."""
    if resource.resource_type == ResourceType.CAMP_WEEK:
        return [CAMP_WEEK_SLOT]
    if start_date is None or end_date is None:
        raise BookingValidationError(
            f"check_in and check_out are required for {resource.resource_type.value} {resource.resource_id}",
            field="check_in",
        )
    if end_date <= start_date:
        raise BookingValidationError(
            "check_out must be after check_in", field="check_out"
        )
    return [d.isoformat() for d in date_range(start_date, end_date)]


class CapacityStore:
    """Reserve and release units of inventory."""

    LEDGER_TABLE = "capacity-ledger"
    ASSIGNMENTS_TABLE = "capacity-assignments"
    RESOURCES_TABLE = "resources"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    # Reads

    def get_assignment(self, assignment_id: str) -> CapacityAssignment | None:
        item = self.db.get_item(
            self.ASSIGNMENTS_TABLE, {"assignment_id": assignment_id}, consistent_read=True
        )
        return self._item_to_assignment(item) if item else None

    def assignments_for_booking(self, booking_id: str) -> list[CapacityAssignment]:
        items = self.db.query_by_gsi(
            self.ASSIGNMENTS_TABLE, "booking-index", "booking_id", booking_id
        )
        return sorted(
            (self._item_to_assignment(item) for item in items),
            key=lambda a: a.created_at,
        )

    def booked_counts(
        self,
        resource_ids: list[str],
        slots: list[str],
    ) -> dict[tuple[str, str], int]:
        """Consistent-read ledger counters for every (resource, slot) pair.

        Missing rows count as zero.
        """
        keys = [
            {"resource_id": resource_id, "slot": slot}
            for resource_id in dict.fromkeys(resource_ids)
            for slot in dict.fromkeys(slots)
        ]
        counts = {(key["resource_id"], key["slot"]): 0 for key in keys}
        for item in self.db.batch_get(self.LEDGER_TABLE, keys, consistent_read=True):
            counts[(item["resource_id"], item["slot"])] = int(item.get("booked", 0))
        return counts

    # Writes

    def reserve(
        self,
        resource: Resource,
        booking_id: str,
        start_date: dt.date | None = None,
        end_date: dt.date | None = None,
    ) -> CapacityAssignment:
        """Hold one unit of ``resource`` for a booking.

        For camp weeks the dates default to the week itself.

        Raises:
            BookingValidationError: Inactive resource or invalid dates.
            CapacityError: A slot is already at capacity.
            ConcurrencyConflict: Lost transaction races after bounded retries.
        """
        if not resource.is_active:
            raise BookingValidationError(
                f"Resource {resource.resource_id} is not bookable", field="resource_id"
            )
        slots = slots_for(resource, start_date, end_date)
        if resource.is_camp_week:
            start_date = resource.start_date or start_date
            end_date = resource.end_date or end_date
        if start_date is None or end_date is None:
            raise BookingValidationError(
                f"Camp week {resource.resource_id} has no dates configured", field="resource_id"
            )

        if resource.capacity <= 0:
            self._reject(resource, booking_id, slots, "resource has no capacity")

        assignment = CapacityAssignment(
            assignment_id=f"ASG-{uuid.uuid4().hex[:16].upper()}",
            booking_id=booking_id,
            resource_id=resource.resource_id,
            resource_type=resource.resource_type,
            start_date=start_date,
            end_date=end_date,
            slots=slots,
            created_at=dt.datetime.now(dt.UTC),
        )

        def attempt() -> CapacityAssignment:
            reasons = self.db.transact_write_reasons(self._reserve_items(resource, assignment))
            if not reasons:
                return assignment
            if CONDITIONAL_CHECK_FAILED in reasons:
                if reasons[0] == CONDITIONAL_CHECK_FAILED:
                    self._reject(resource, booking_id, slots, "resource capacity changed")
                self._reject(resource, booking_id, slots, "slot at capacity")
            if TRANSACTION_CONFLICT in reasons:
                raise OptimisticLockError(resource.resource_id)
            raise CapacityError(
                message="Reservation could not be committed",
                details={"resource_id": resource.resource_id, "reasons": reasons},
            )

        reserved = retry_on_conflict(attempt, description=f"reserve {resource.resource_id}")
        log_capacity_operation(
            logger,
            "reserve",
            resource_id=resource.resource_id,
            booking_id=booking_id,
            assignment_id=reserved.assignment_id,
            slots=len(slots),
        )
        return reserved

    def release(self, assignment_id: str) -> CapacityAssignment:
        """Release an assignment. Releasing twice is a no-op.

        Raises:
            NotFoundError: Unknown assignment.
            ConcurrencyConflict: Lost transaction races after bounded retries.
        """
        current = self.get_assignment(assignment_id)
        if current is None:
            raise NotFoundError("assignment", assignment_id)
        if not current.is_active:
            return current

        released_at = dt.datetime.now(dt.UTC)

        def attempt() -> CapacityAssignment:
            reasons = self.db.transact_write_reasons(self._release_items(current, released_at))
            if not reasons:
                return current.model_copy(update={"released_at": released_at})
            if reasons[0] == CONDITIONAL_CHECK_FAILED:
                # Released concurrently by another caller
                latest = self.get_assignment(assignment_id)
                if latest is not None and not latest.is_active:
                    return latest
            if TRANSACTION_CONFLICT in reasons:
                raise OptimisticLockError(assignment_id)
            logger.error(
                "Ledger out of step with assignment %s (reasons=%s)", assignment_id, reasons
            )
            raise OptimisticLockError(assignment_id)

        released = retry_on_conflict(attempt, description=f"release {assignment_id}")
        log_capacity_operation(
            logger,
            "release",
            resource_id=released.resource_id,
            booking_id=released.booking_id,
            assignment_id=assignment_id,
            slots=len(released.slots),
        )
        return released

    def release_many(self, assignments: list[CapacityAssignment]) -> list[CapacityAssignment]:
        """Release each active assignment; returns those released by this call."""
        released = []
        for assignment in assignments:
            if assignment.is_active:
                result = self.release(assignment.assignment_id)
                if result.released_at is not None:
                    released.append(result)
        return released

    def release_for_booking(self, booking_id: str) -> list[CapacityAssignment]:
        """Release every active assignment held by a booking."""
        return self.release_many(self.assignments_for_booking(booking_id))

    # Transaction builders

    def _reserve_items(
        self, resource: Resource, assignment: CapacityAssignment
    ) -> list[dict[str, Any]]:
        s = self.db.serialize
        now = assignment.created_at.isoformat()
        items: list[dict[str, Any]] = [
            {
                "ConditionCheck": {
                    "TableName": self.db.table_name(self.RESOURCES_TABLE),
                    "Key": {"resource_id": s(resource.resource_id)},
                    "ConditionExpression": "is_active = :true AND #cap = :cap",
                    "ExpressionAttributeNames": {"#cap": "capacity"},
                    "ExpressionAttributeValues": {
                        ":true": s(True),
                        ":cap": s(resource.capacity),
                    },
                }
            }
        ]
        for slot in assignment.slots:
            items.append(
                {
                    "Update": {
                        "TableName": self.db.table_name(self.LEDGER_TABLE),
                        "Key": {"resource_id": s(resource.resource_id), "slot": s(slot)},
                        "UpdateExpression": "SET #cap = :cap, updated_at = :now ADD booked :one",
                        "ConditionExpression": "attribute_not_exists(booked) OR booked < :cap",
                        "ExpressionAttributeNames": {"#cap": "capacity"},
                        "ExpressionAttributeValues": {
                            ":cap": s(resource.capacity),
                            ":now": s(now),
                            ":one": s(1),
                        },
                    }
                }
            )
        items.append(
            {
                "Put": {
                    "TableName": self.db.table_name(self.ASSIGNMENTS_TABLE),
                    "Item": self.db.serialize_item(self._assignment_to_item(assignment)),
                    "ConditionExpression": "attribute_not_exists(assignment_id)",
                }
            }
        )
        return items

    def _release_items(
        self, assignment: CapacityAssignment, released_at: dt.datetime
    ) -> list[dict[str, Any]]:
        s = self.db.serialize
        now = released_at.isoformat()
        items: list[dict[str, Any]] = [
            {
                "Update": {
                    "TableName": self.db.table_name(self.ASSIGNMENTS_TABLE),
                    "Key": {"assignment_id": s(assignment.assignment_id)},
                    "UpdateExpression": "SET released_at = :now",
                    "ConditionExpression": "attribute_exists(assignment_id) AND attribute_not_exists(released_at)",
                    "ExpressionAttributeValues": {":now": s(now)},
                }
            }
        ]
        for slot in assignment.slots:
            items.append(
                {
                    "Update": {
                        "TableName": self.db.table_name(self.LEDGER_TABLE),
                        "Key": {"resource_id": s(assignment.resource_id), "slot": s(slot)},
                        "UpdateExpression": "SET updated_at = :now ADD booked :minus_one",
                        "ConditionExpression": "booked > :zero",
                        "ExpressionAttributeValues": {
                            ":now": s(now),
                            ":minus_one": s(-1),
                            ":zero": s(0),
                        },
                    }
                }
            )
        return items

    def _reject(self, resource: Resource, booking_id: str, slots: list[str], reason: str) -> None:
        log_capacity_operation(
            logger,
            "reserve",
            resource_id=resource.resource_id,
            booking_id=booking_id,
            slots=len(slots),
            error=reason,
        )
        raise CapacityError(
            message=f"Insufficient capacity for {resource.resource_id}",
            details={
                "resource_id": resource.resource_id,
                "first_slot": slots[0],
                "last_slot": slots[-1],
                "reason": reason,
            },
        )

    # Conversion helpers

    def _assignment_to_item(self, assignment: CapacityAssignment) -> dict[str, Any]:
        item: dict[str, Any] = {
            "assignment_id": assignment.assignment_id,
            "booking_id": assignment.booking_id,
            "resource_id": assignment.resource_id,
            "resource_type": assignment.resource_type.value,
            "start_date": assignment.start_date.isoformat(),
            "end_date": assignment.end_date.isoformat(),
            "slots": assignment.slots,
            "created_at": assignment.created_at.isoformat(),
        }
        if assignment.released_at:
            item["released_at"] = assignment.released_at.isoformat()
        return item

    def _item_to_assignment(self, item: dict[str, Any]) -> CapacityAssignment:
        return CapacityAssignment(
            assignment_id=item["assignment_id"],
            booking_id=item["booking_id"],
            resource_id=item["resource_id"],
            resource_type=ResourceType(item["resource_type"]),
            start_date=dt.date.fromisoformat(item["start_date"]),
            end_date=dt.date.fromisoformat(item["end_date"]),
            slots=list(item["slots"]),
            created_at=dt.datetime.fromisoformat(item["created_at"]),
            released_at=(
                dt.datetime.fromisoformat(item["released_at"])
                if item.get("released_at")
                else None
            ),
        )
