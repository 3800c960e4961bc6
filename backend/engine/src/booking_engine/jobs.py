"""Lambda entrypoints for scheduled jobs.

Deployed as EventBridge-scheduled functions with handlers
``booking_engine.jobs.reaper_handler`` and
``booking_engine.jobs.reconciliation_handler``.
"""

import datetime as dt
import os
from typing import Any

from booking_engine.engine import build_engine
from booking_engine.models import ReconciliationRequest
from booking_engine.utils.logging import configure_logging, get_logger, set_correlation_id

logger = get_logger(__name__)

configure_logging(os.environ.get("LOG_LEVEL", "INFO"))


def reaper_handler(event: dict[str, Any] | None, context: Any) -> dict[str, Any]:
    """Release holds of unpaid bookings whose checkout expired.

    Optional event keys: ``now`` (ISO timestamp), ``limit``.
    """
    event = event or {}
    set_correlation_id(getattr(context, "aws_request_id", None))
    now = dt.datetime.fromisoformat(event["now"]) if event.get("now") else None
    result = build_engine().reaper.reap_expired(now=now, limit=event.get("limit"))
    return {"statusCode": 200, "body": result.to_dict()}


def reconciliation_handler(event: dict[str, Any] | None, context: Any) -> dict[str, Any]:
    """Nightly payment reconciliation; event fields map to ReconciliationRequest."""
    set_correlation_id(getattr(context, "aws_request_id", None))
    request = ReconciliationRequest.model_validate(event or {})
    report = build_engine().reconciliation.reconcile(request)
    logger.info("Reconciliation summary: %s", report.summary.model_dump())
    return {"statusCode": 200, "body": report.model_dump(mode="json")}
