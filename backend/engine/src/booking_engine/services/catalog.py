"""Read access to bookable resources and the add-on catalog."""

import datetime as dt
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr

from booking_engine.models import Addon, Resource, ResourceType

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService


class CatalogService:
    """Resources (rooms, beds, camp weeks) and add-ons."""

    RESOURCES_TABLE = "resources"
    ADDONS_TABLE = "addons"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def get_resource(self, resource_id: str, consistent_read: bool = False) -> Resource | None:
        item = self.db.get_item(
            self.RESOURCES_TABLE, {"resource_id": resource_id}, consistent_read=consistent_read
        )
        return self._item_to_resource(item) if item else None

    def get_resources(self, resource_ids: list[str]) -> list[Resource]:
        """Resources by ID, in the order given; unknown IDs are skipped."""
        items = self.db.batch_get(
            self.RESOURCES_TABLE,
            [{"resource_id": rid} for rid in dict.fromkeys(resource_ids)],
            consistent_read=True,
        )
        by_id = {item["resource_id"]: self._item_to_resource(item) for item in items}
        return [by_id[rid] for rid in dict.fromkeys(resource_ids) if rid in by_id]

    def list_active_resources(self, resource_type: ResourceType) -> list[Resource]:
        """Active resources of one type, via the type-index GSI."""
        items = self.db.query_by_gsi(
            self.RESOURCES_TABLE,
            "type-index",
            "resource_type",
            resource_type.value,
            filter_expression=Attr("is_active").eq(True),
        )
        return sorted(
            (self._item_to_resource(item) for item in items),
            key=lambda r: r.resource_id,
        )

    def save_resource(self, resource: Resource) -> None:
        self.db.put_item(self.RESOURCES_TABLE, self._resource_to_item(resource))

    def get_addon(self, addon_id: str) -> Addon | None:
        item = self.db.get_item(self.ADDONS_TABLE, {"addon_id": addon_id})
        if not item:
            return None
        return Addon(
            addon_id=item["addon_id"],
            name=item["name"],
            unit_price=int(item["unit_price"]),
            currency=item.get("currency", "eur"),
            is_active=bool(item.get("is_active", True)),
            max_quantity=int(item["max_quantity"]) if item.get("max_quantity") else None,
        )

    def save_addon(self, addon: Addon) -> None:
        item: dict[str, Any] = {
            "addon_id": addon.addon_id,
            "name": addon.name,
            "unit_price": addon.unit_price,
            "currency": addon.currency,
            "is_active": addon.is_active,
        }
        if addon.max_quantity:
            item["max_quantity"] = addon.max_quantity
        self.db.put_item(self.ADDONS_TABLE, item)

    # Conversion helpers

    def _resource_to_item(self, resource: Resource) -> dict[str, Any]:
        item: dict[str, Any] = {
            "resource_id": resource.resource_id,
            "name": resource.name,
            "resource_type": resource.resource_type.value,
            "capacity": resource.capacity,
            "unit_price": resource.unit_price,
            "currency": resource.currency,
            "is_active": resource.is_active,
        }
        if resource.start_date:
            item["start_date"] = resource.start_date.isoformat()
        if resource.end_date:
            item["end_date"] = resource.end_date.isoformat()
        return item

    def _item_to_resource(self, item: dict[str, Any]) -> Resource:
        return Resource(
            resource_id=item["resource_id"],
            name=item.get("name", item["resource_id"]),
            resource_type=ResourceType(item["resource_type"]),
            capacity=int(item["capacity"]),
            unit_price=int(item.get("unit_price", 0)),
            currency=item.get("currency", "eur"),
            is_active=bool(item.get("is_active", True)),
            start_date=(
                dt.date.fromisoformat(item["start_date"]) if item.get("start_date") else None
            ),
            end_date=(
                dt.date.fromisoformat(item["end_date"]) if item.get("end_date") else None
            ),
        )
