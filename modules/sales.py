"""Sales module: pulls products and orders managed in Odoo."""

from enum import Enum

from core.mapping.field_mapper import many2one_to_id, many2one_to_name
from core.sync.entities import EntitySpec, ModuleDefinition, SyncDirection


class SalesEntity(str, Enum):
    PRODUCT = "product"
    ORDER = "order"


def _order_in(data):
    if "partner_id" in data:
        data["partner_id"] = many2one_to_id(data["partner_id"])
    if "currency" in data:
        data["currency"] = many2one_to_name(data["currency"])
    return data


SALES_MODULE = ModuleDefinition(
    id="sales",
    name="Sales",
    direction=SyncDirection.REMOTE_TO_LOCAL,
    entity_types=SalesEntity,
    entities={
        SalesEntity.PRODUCT.value: EntitySpec(
            remote_model="product.template",
            field_map={
                "title": "name",
                "content": "description_sale",
                "price": "list_price",
                "sku": "default_code",
            },
            dedup_fields=("default_code",),
            setting_key="sync_products",
        ),
        SalesEntity.ORDER.value: EntitySpec(
            remote_model="sale.order",
            field_map={
                "title": "name",
                "total": "amount_total",
                "date": "date_order",
                "state": "state",
                "partner_id": "partner_id",
                "currency": "currency_id",
            },
            setting_key="sync_orders",
            transform_in=_order_in,
        ),
    },
    exclusive_group="commerce",
    exclusive_priority=10,
    default_settings={"sync_products": True, "sync_orders": True},
)
