"""WooCommerce module: products, variants and orders.

Product names and descriptions are translatable; their translations are
pulled in batches per language after each queue batch.
"""

from enum import Enum

from core.mapping.field_mapper import format_price, local_datetime_to_remote, many2one_to_id
from core.sync.entities import EntitySpec, ModuleDefinition, SyncDirection


class WooCommerceEntity(str, Enum):
    PRODUCT = "product"
    VARIANT = "variant"
    ORDER = "order"


def _prices_out(values):
    if "list_price" in values:
        values["list_price"] = format_price(values["list_price"])
    return values


def _order_out(values):
    if "amount_total" in values:
        values["amount_total"] = format_price(values["amount_total"])
    if "date_order" in values:
        values["date_order"] = local_datetime_to_remote(values["date_order"])
    return values


def _order_in(data):
    if "partner_id" in data:
        data["partner_id"] = many2one_to_id(data["partner_id"])
    return data


def _variant_domain(values):
    if not values.get("default_code"):
        return []
    return [("default_code", "=", values["default_code"])]


WOOCOMMERCE_MODULE = ModuleDefinition(
    id="woocommerce",
    name="WooCommerce",
    direction=SyncDirection.BIDIRECTIONAL,
    entity_types=WooCommerceEntity,
    entities={
        WooCommerceEntity.PRODUCT.value: EntitySpec(
            remote_model="product.template",
            field_map={
                "name": "name",
                "sku": "default_code",
                "regular_price": "list_price",
                "weight": "weight",
                "description": "description_sale",
            },
            dedup_fields=("default_code",),
            setting_key="sync_products",
            translatable_fields={"name": "name", "description_sale": "description"},
            transform_out=_prices_out,
        ),
        WooCommerceEntity.VARIANT.value: EntitySpec(
            remote_model="product.product",
            field_map={
                "sku": "default_code",
                "regular_price": "lst_price",
                "weight": "weight",
            },
            dedup_domain=_variant_domain,
            setting_key="sync_products",
        ),
        WooCommerceEntity.ORDER.value: EntitySpec(
            remote_model="sale.order",
            field_map={
                "total": "amount_total",
                "date_created": "date_order",
                "status": "state",
                "partner_id": "partner_id",
            },
            setting_key="sync_orders",
            transform_out=_order_out,
            transform_in=_order_in,
        ),
    },
    exclusive_group="commerce",
    exclusive_priority=30,
    default_settings={
        "sync_products": True,
        "sync_orders": True,
        "auto_confirm_orders": True,
    },
)
