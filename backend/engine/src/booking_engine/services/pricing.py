"""Price quotes for checkout requests.

Rooms and beds are priced per night over the stay, camp weeks per seat and
add-ons per unit. Promo codes are resolved by a ``PromoCodeValidator``
collaborator; the discount is capped so the total never goes below zero.
"""

import datetime as dt
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from booking_engine.config import EngineSettings, get_settings
from booking_engine.models import (
    BookingValidationError,
    CheckoutRequest,
    LineItem,
    LineItemType,
    PriceQuote,
    Resource,
)
from booking_engine.utils.logging import get_logger

if TYPE_CHECKING:
    from .catalog import CatalogService
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)


@dataclass(frozen=True)
class PromoDiscount:
    code: str
    discount_type: str  # "percentage" or "fixed"
    value: int

    def amount_for(self, subtotal: int) -> int:
        if self.discount_type == "percentage":
            return min(subtotal, subtotal * self.value // 100)
        return min(subtotal, self.value)


class PromoCodeValidator(Protocol):
    def validate(self, code: str, subtotal: int) -> PromoDiscount | None:
        """Return the discount for ``code``, or None if it does not apply."""
        ...


class TablePromoCodeValidator:
    """Promo codes stored in the ``promo-codes`` table.

    Item shape: ``code``, ``discount_type`` (percentage|fixed), ``value``
    (percent or minor units), ``is_active``, optional ``valid_until`` and
    ``min_subtotal``.
    """

    TABLE = "promo-codes"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def validate(self, code: str, subtotal: int) -> PromoDiscount | None:
        item = self.db.get_item(self.TABLE, {"code": code.strip().upper()})
        if not item or not item.get("is_active", True):
            return None
        valid_until = item.get("valid_until")
        if valid_until and dt.datetime.fromisoformat(valid_until) < dt.datetime.now(dt.UTC):
            return None
        if subtotal < int(item.get("min_subtotal", 0)):
            return None
        return PromoDiscount(
            code=item["code"],
            discount_type=item.get("discount_type", "fixed"),
            value=int(item["value"]),
        )


class PricingService:
    def __init__(
        self,
        catalog: "CatalogService",
        promo_validator: PromoCodeValidator | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self.catalog = catalog
        self.promo_validator = promo_validator
        self.settings = settings or get_settings()

    def quote(
        self,
        request: CheckoutRequest,
        resources: dict[str, Resource] | None = None,
    ) -> PriceQuote:
        """Price a checkout request.

        Args:
            request: The checkout request
            resources: Already-loaded resources by ID; loaded from the catalog if omitted

        Raises:
            BookingValidationError: Unknown or inactive resource/add-on, bad dates,
                unknown promo code, or a zero total.
        """
        if resources is None:
            resources = self.load_resources(request)

        currency = self.settings.currency
        line_items: list[LineItem] = []
        for index, selection in enumerate(request.items):
            resource = resources[selection.resource_id]
            line_items.append(
                self._resource_line(resource, selection.quantity, selection.check_in, selection.check_out, index)
            )

        for index, selection in enumerate(request.addons):
            addon = self.catalog.get_addon(selection.addon_id)
            if addon is None or not addon.is_active:
                raise BookingValidationError(
                    f"Add-on {selection.addon_id} is not available",
                    field=f"addons[{index}].addon_id",
                )
            if addon.max_quantity and selection.quantity > addon.max_quantity:
                raise BookingValidationError(
                    f"At most {addon.max_quantity} of add-on {addon.addon_id} may be booked",
                    field=f"addons[{index}].quantity",
                )
            line_items.append(
                LineItem(
                    item_type=LineItemType.ADDON,
                    reference_id=addon.addon_id,
                    description=addon.name,
                    quantity=selection.quantity,
                    unit_price=addon.unit_price,
                    subtotal=selection.quantity * addon.unit_price,
                )
            )

        subtotal = sum(item.subtotal for item in line_items)
        discount = 0
        promo_code = None
        if request.promo_code:
            promo = self.promo_validator.validate(request.promo_code, subtotal) if self.promo_validator else None
            if promo is None:
                raise BookingValidationError(
                    f"Promo code {request.promo_code} is not valid", field="promo_code"
                )
            discount = promo.amount_for(subtotal)
            promo_code = promo.code

        total = max(0, subtotal - discount)
        if total == 0:
            raise BookingValidationError("Booking total must be greater than zero", field="items")

        logger.info(
            "Quoted %d line items: subtotal=%d discount=%d total=%d %s",
            len(line_items),
            subtotal,
            discount,
            total,
            currency,
        )
        return PriceQuote(
            line_items=line_items,
            subtotal=subtotal,
            discount_amount=discount,
            promo_code=promo_code,
            total_amount=total,
            currency=currency,
        )

    def load_resources(self, request: CheckoutRequest) -> dict[str, Resource]:
        """Load and check every resource referenced by the request."""
        found = {r.resource_id: r for r in self.catalog.get_resources([s.resource_id for s in request.items])}
        for index, selection in enumerate(request.items):
            resource = found.get(selection.resource_id)
            if resource is None:
                raise BookingValidationError(
                    f"Resource {selection.resource_id} not found",
                    field=f"items[{index}].resource_id",
                )
            if not resource.is_active:
                raise BookingValidationError(
                    f"Resource {selection.resource_id} is not bookable",
                    field=f"items[{index}].resource_id",
                )
        return found

    def _resource_line(
        self,
        resource: Resource,
        quantity: int,
        check_in: dt.date | None,
        check_out: dt.date | None,
        index: int,
    ) -> LineItem:
        if resource.is_camp_week:
            return LineItem(
                item_type=LineItemType.CAMP_WEEK,
                reference_id=resource.resource_id,
                description=resource.name,
                quantity=quantity,
                unit_price=resource.unit_price,
                subtotal=quantity * resource.unit_price,
                start_date=resource.start_date,
                end_date=resource.end_date,
            )

        nights = self._nights(check_in, check_out, index)
        return LineItem(
            item_type=LineItemType(resource.resource_type.value),
            reference_id=resource.resource_id,
            description=f"{resource.name} ({nights} nights x {quantity})",
            quantity=nights * quantity,
            unit_price=resource.unit_price,
            subtotal=nights * quantity * resource.unit_price,
            start_date=check_in,
            end_date=check_out,
        )

    def _nights(self, check_in: dt.date | None, check_out: dt.date | None, index: int) -> int:
        if check_in is None:
            raise BookingValidationError("check_in is required", field=f"items[{index}].check_in")
        if check_out is None:
            raise BookingValidationError("check_out is required", field=f"items[{index}].check_out")
        nights = (check_out - check_in).days
        if nights < 1:
            raise BookingValidationError(
                "check_out must be after check_in", field=f"items[{index}].check_out"
            )
        if nights > self.settings.max_stay_nights:
            raise BookingValidationError(
                f"Stays are limited to {self.settings.max_stay_nights} nights",
                field=f"items[{index}].check_out",
            )
        return nights


def promo_item(code: str, discount_type: str, value: int, **extra: Any) -> dict[str, Any]:
    """Build a ``promo-codes`` table item (seeding and tests)."""
    return {"code": code.upper(), "discount_type": discount_type, "value": value, "is_active": True, **extra}
