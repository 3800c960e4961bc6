"""Inventory models: bookable resources, capacity assignments and availability."""

import datetime as dt
from datetime import date, datetime

from pydantic import BaseModel, Field

from .enums import ResourceType

# Ledger slot used for camp weeks, which are sold as a whole week
CAMP_WEEK_SLOT = "week"


class Resource(BaseModel):
    """A room, bed or camp week with a declared capacity."""

    resource_id: str = Field(..., examples=["room-ocean-view"])
    name: str
    resource_type: ResourceType
    capacity: int = Field(..., ge=0, description="Units that may be held at once")
    unit_price: int = Field(
        ...,
        ge=0,
        description="Minor units: per night for rooms/beds, per seat for camp weeks",
    )
    currency: str = Field(default="eur")
    is_active: bool = True
    start_date: date | None = Field(default=None, description="Camp week start")
    end_date: date | None = Field(default=None, description="Camp week end (exclusive)")

    @property
    def is_camp_week(self) -> bool:
        return self.resource_type == ResourceType.CAMP_WEEK


class CapacityAssignment(BaseModel):
    """One unit of inventory held by a booking.

    Active while ``released_at`` is None. Each assignment consumes exactly
    one unit of its resource on every slot it covers.
    """

    assignment_id: str
    booking_id: str
    resource_id: str
    resource_type: ResourceType
    start_date: date
    end_date: date = Field(..., description="Exclusive")
    slots: list[str] = Field(..., min_length=1, description="Ledger slots consumed")
    created_at: datetime
    released_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.released_at is None


class DateAvailability(BaseModel):
    """Remaining capacity for one date."""

    date: dt.date
    capacity: int
    booked: int
    remaining: int
    available: bool


class AvailabilitySummary(BaseModel):
    total_dates_checked: int
    available_dates: int
    sold_out_dates: int
    total_capacity: int
    participants_requested: int


class AvailabilityReport(BaseModel):
    """Availability for a date range with explicit cache metadata.

    The engine keeps no cache of its own; ``cache_expires_at`` tells the
    caller how long the figures may be reused.
    """

    start_date: date
    end_date: date
    participants: int
    resource_ids: list[str]
    date_availability: list[DateAvailability]
    summary: AvailabilitySummary
    checked_at: datetime
    cache_expires_at: datetime
    fallback: bool = Field(
        default=False,
        description="True when no resources were configured and the fallback capacity was used",
    )


class Addon(BaseModel):
    """An optional extra sold per unit (surf lesson, board rental, airport transfer)."""

    addon_id: str
    name: str
    unit_price: int = Field(..., ge=0, description="Minor units per unit")
    currency: str = Field(default="eur")
    is_active: bool = True
    max_quantity: int | None = Field(default=None, ge=1)
