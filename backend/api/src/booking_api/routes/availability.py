"""Availability endpoint.

Dates are YYYY-MM-DD; the range is [start_date, end_date), and
start_date == end_date asks about that single day.
"""

import datetime as dt

from fastapi import APIRouter, Depends, Query

from booking_api.dependencies import get_availability_calculator
from booking_api.models.common import ErrorResponse
from booking_engine.models import AvailabilityReport, BookingValidationError
from booking_engine.services.availability import AvailabilityCalculator

router = APIRouter(tags=["availability"])


@router.get(
    "/availability",
    summary="Check remaining capacity per date",
    response_model=AvailabilityReport,
    responses={
        400: {"model": ErrorResponse, "description": "Missing or invalid dates"},
    },
)
async def get_availability(
    start_date: dt.date | None = Query(default=None, examples=["2026-07-01"]),
    end_date: dt.date | None = Query(default=None, examples=["2026-07-08"]),
    participants: int = Query(default=1, ge=1, le=50),
    resource_ids: str | None = Query(
        default=None,
        description="Comma-separated resource IDs; defaults to all active rooms",
    ),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
) -> AvailabilityReport:
    """Per-date capacity, bookings and remaining units, with cache metadata."""
    if start_date is None or end_date is None:
        raise BookingValidationError(
            "Missing required parameters: start_date and end_date",
            field="start_date" if start_date is None else "end_date",
        )
    ids = [rid.strip() for rid in resource_ids.split(",") if rid.strip()] if resource_ids else None
    return calculator.get_availability(start_date, end_date, participants, ids)
