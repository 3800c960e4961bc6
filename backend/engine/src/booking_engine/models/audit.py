"""Append-only audit log entry."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AuditLogEntry(BaseModel):
    """Immutable record of a state transition or administrative action."""

    audit_id: str
    timestamp: datetime
    actor: str = Field(..., examples=["system:webhook", "staff:alice@example.com"])
    action: str = Field(..., examples=["booking.status_changed", "refund.failed"])
    resource_type: str = Field(..., examples=["booking", "payment", "webhook_event"])
    resource_id: str
    success: bool
    details: dict[str, Any] = Field(default_factory=dict)
