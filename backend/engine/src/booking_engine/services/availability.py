"""Per-date availability derived from the capacity ledger.

Pure read: nothing here writes, and nothing is cached in-process. The
report carries ``cache_expires_at`` so callers decide how long to reuse it.
"""

import datetime as dt
from typing import TYPE_CHECKING

from booking_engine.config import EngineSettings, get_settings
from booking_engine.models import (
    CAMP_WEEK_SLOT,
    AvailabilityReport,
    AvailabilitySummary,
    BookingValidationError,
    DateAvailability,
    Resource,
    ResourceType,
)
from booking_engine.utils.logging import get_logger

from .capacity_store import date_range

if TYPE_CHECKING:
    from .capacity_store import CapacityStore
    from .catalog import CatalogService

logger = get_logger(__name__)


class AvailabilityCalculator:
    """Computes remaining capacity per date for a set of resources."""

    def __init__(
        self,
        catalog: "CatalogService",
        store: "CapacityStore",
        settings: EngineSettings | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.settings = settings or get_settings()

    def resources_in_scope(self, resource_ids: list[str] | None = None) -> list[Resource]:
        """Explicit resources if given, else all active rooms."""
        if resource_ids:
            return [r for r in self.catalog.get_resources(resource_ids) if r.is_active]
        return self.catalog.list_active_resources(ResourceType.ROOM)

    def get_availability(
        self,
        start_date: dt.date,
        end_date: dt.date,
        participants: int = 1,
        resource_ids: list[str] | None = None,
        now: dt.datetime | None = None,
    ) -> AvailabilityReport:
        """Availability for every date in [start_date, end_date).

        ``start_date == end_date`` is a single-day query and returns one entry.

        Raises:
            BookingValidationError: end before start, or participants < 1.
        """
        if end_date < start_date:
            raise BookingValidationError("end_date must not be before start_date", field="end_date")
        if participants < 1:
            raise BookingValidationError("participants must be at least 1", field="participants")

        dates = date_range(start_date, end_date) or [start_date]
        resources = self.resources_in_scope(resource_ids)

        fallback = not resources
        if fallback:
            logger.warning(
                "No resources configured for availability scope %s; using fallback capacity %d",
                resource_ids or "all-rooms",
                self.settings.fallback_capacity,
            )
            capacity_by_date = {d: self.settings.fallback_capacity for d in dates}
            booked_by_date = {d: 0 for d in dates}
        else:
            capacity_by_date = {
                d: sum(r.capacity for r in resources if not r.is_camp_week or _covers(r, d))
                for d in dates
            }
            booked_by_date = self._booked_by_date(resources, dates)

        entries = []
        for d in dates:
            capacity = capacity_by_date[d]
            booked = booked_by_date[d]
            remaining = max(0, capacity - booked)
            entries.append(
                DateAvailability(
                    date=d,
                    capacity=capacity,
                    booked=booked,
                    remaining=remaining,
                    available=remaining >= participants,
                )
            )

        checked_at = now or dt.datetime.now(dt.UTC)
        available_count = sum(1 for e in entries if e.available)
        summary = AvailabilitySummary(
            total_dates_checked=len(entries),
            available_dates=available_count,
            sold_out_dates=sum(1 for e in entries if e.remaining == 0),
            total_capacity=max(capacity_by_date.values()),
            participants_requested=participants,
        )

        logger.info(
            "Availability %s..%s: %d/%d dates available for %d participants",
            start_date,
            end_date,
            available_count,
            len(entries),
            participants,
        )

        return AvailabilityReport(
            start_date=start_date,
            end_date=end_date,
            participants=participants,
            resource_ids=[r.resource_id for r in resources],
            date_availability=entries,
            summary=summary,
            checked_at=checked_at,
            cache_expires_at=checked_at + dt.timedelta(seconds=self.settings.availability_cache_seconds),
            fallback=fallback,
        )

    def _booked_by_date(
        self, resources: list[Resource], dates: list[dt.date]
    ) -> dict[dt.date, int]:
        per_date = [r for r in resources if not r.is_camp_week]
        camp_weeks = [r for r in resources if r.is_camp_week]

        counts = self.store.booked_counts(
            [r.resource_id for r in per_date], [d.isoformat() for d in dates]
        ) if per_date else {}
        week_counts = self.store.booked_counts(
            [r.resource_id for r in camp_weeks], [CAMP_WEEK_SLOT]
        ) if camp_weeks else {}

        booked: dict[dt.date, int] = {}
        for d in dates:
            total = sum(counts.get((r.resource_id, d.isoformat()), 0) for r in per_date)
            for week in camp_weeks:
                if _covers(week, d):
                    total += week_counts.get((week.resource_id, CAMP_WEEK_SLOT), 0)
            booked[d] = total
        return booked


def _covers(week: Resource, day: dt.date) -> bool:
    if week.start_date is None or week.end_date is None:
        return False
    return week.start_date <= day < week.end_date
