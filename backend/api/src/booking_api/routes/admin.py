"""Administrative jobs: reservation reaper and payment reconciliation."""

from fastapi import APIRouter, Body, Depends

from booking_api.dependencies import get_reaper, get_reconciliation_service
from booking_api.models.admin import ReaperRunRequest, ReaperRunResponse
from booking_engine.models import ReconciliationReport, ReconciliationRequest
from booking_engine.services.reaper import ReservationReaper
from booking_engine.services.reconciliation import ReconciliationService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/reaper/run",
    summary="Release expired reservations",
    response_model=ReaperRunResponse,
)
async def run_reaper(
    body: ReaperRunRequest | None = Body(default=None),
    reaper: ReservationReaper = Depends(get_reaper),
) -> ReaperRunResponse:
    body = body or ReaperRunRequest()
    result = reaper.reap_expired(now=body.now, limit=body.limit)
    return ReaperRunResponse(**result.to_dict())


@router.post(
    "/reconciliation",
    summary="Reconcile payments with Stripe",
    response_model=ReconciliationReport,
)
async def run_reconciliation(
    body: ReconciliationRequest | None = Body(default=None),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ReconciliationReport:
    return service.reconcile(body or ReconciliationRequest(), actor="admin")
