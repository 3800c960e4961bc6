"""Append-only audit sink.

Entries are written with ``attribute_not_exists(audit_id)`` so an existing
entry can never be overwritten. The engine writes here but never reads the
audit log to make decisions.
"""

import datetime as dt
import json
import uuid
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Key

from booking_engine.models import AuditLogEntry
from booking_engine.utils.logging import get_logger

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


class AuditService:
    """Writes AuditLogEntry records to the audit-log table."""

    TABLE = "audit-log"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def record(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: str,
        success: bool = True,
        actor: str = SYSTEM_ACTOR,
        details: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """Append one entry to the audit log.

        Args:
            action: What happened, e.g. ``booking.status_changed``
            resource_type: booking, payment, webhook_event, system
            resource_id: ID of the affected record
            success: Outcome of the action
            actor: Who triggered it (``system:webhook``, ``staff:<email>``)
            details: Free-form context; serialized as JSON

        Returns:
            The stored entry
        """
        entry = AuditLogEntry(
            audit_id=f"AUD-{uuid.uuid4().hex.upper()}",
            timestamp=dt.datetime.now(dt.UTC),
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            success=success,
            details=details or {},
        )

        item = {
            "audit_id": entry.audit_id,
            "timestamp": entry.timestamp.isoformat(),
            "actor": entry.actor,
            "action": entry.action,
            "resource_type": entry.resource_type,
            "resource_id": entry.resource_id,
            "success": entry.success,
            "details": json.dumps(entry.details, default=str, sort_keys=True),
        }
        self.db.put_item(
            self.TABLE, item, condition_expression="attribute_not_exists(audit_id)"
        )

        log = logger.info if success else logger.warning
        log(
            "Audit: %s %s/%s by %s success=%s",
            action,
            resource_type,
            resource_id,
            actor,
            success,
        )
        return entry

    def list_for_resource(self, resource_id: str) -> list[AuditLogEntry]:
        """Entries for one resource, oldest first (admin and tests)."""
        items = self.db.query(
            self.TABLE,
            Key("resource_id").eq(resource_id),
            index_name="resource-index",
        )
        entries = [
            AuditLogEntry(
                audit_id=item["audit_id"],
                timestamp=dt.datetime.fromisoformat(item["timestamp"]),
                actor=item["actor"],
                action=item["action"],
                resource_type=item["resource_type"],
                resource_id=item["resource_id"],
                success=bool(item["success"]),
                details=json.loads(item.get("details") or "{}"),
            )
            for item in items
        ]
        return sorted(entries, key=lambda e: e.timestamp)
