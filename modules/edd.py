"""Easy Digital Downloads module: downloads and orders."""

from enum import Enum

from core.mapping.field_mapper import format_price
from core.sync.entities import EntitySpec, ModuleDefinition, SyncDirection


class EddEntity(str, Enum):
    DOWNLOAD = "download"
    ORDER = "order"


def _download_out(values):
    if "list_price" in values:
        values["list_price"] = format_price(values["list_price"])
    return values


EDD_MODULE = ModuleDefinition(
    id="edd",
    name="Easy Digital Downloads",
    direction=SyncDirection.BIDIRECTIONAL,
    entity_types=EddEntity,
    entities={
        EddEntity.DOWNLOAD.value: EntitySpec(
            remote_model="product.template",
            field_map={
                "title": "name",
                "content": "description_sale",
                "price": "list_price",
            },
            dedup_fields=("name",),
            setting_key="sync_downloads",
            transform_out=_download_out,
        ),
        EddEntity.ORDER.value: EntitySpec(
            remote_model="sale.order",
            field_map={
                "total": "amount_total",
                "date_created": "date_order",
                "status": "state",
                "partner_id": "partner_id",
            },
            setting_key="sync_orders",
        ),
    },
    exclusive_group="commerce",
    exclusive_priority=20,
    default_settings={
        "sync_downloads": True,
        "sync_orders": True,
        "auto_confirm_orders": True,
    },
)
