"""Payment reconciliation report models."""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import DiscrepancySeverity, DiscrepancyType


class ReconciliationRequest(BaseModel):
    date_from: datetime | None = Field(default=None, description="Defaults to 30 days ago")
    date_to: datetime | None = Field(default=None, description="Defaults to now")
    limit: int = Field(default=100, ge=1, le=1000)
    auto_correct: bool = False


class Discrepancy(BaseModel):
    type: DiscrepancyType
    severity: DiscrepancySeverity
    booking_id: str | None = None
    payment_id: str | None = None
    payment_intent_id: str | None = None
    local_value: int | str | None = None
    provider_value: int | str | None = None
    description: str
    suggested_action: str
    auto_corrected: bool = False


class ReconciliationSummary(BaseModel):
    total_payments_checked: int
    discrepancies_found: int
    auto_corrected: int
    manual_review_required: int
    execution_time_ms: int
    stripe_api_calls: int


class ReconciliationReport(BaseModel):
    summary: ReconciliationSummary
    discrepancies: list[Discrepancy]
    date_from: datetime
    date_to: datetime
    executed_at: datetime
