"""WooCommerce Memberships module: plans and user memberships."""

from enum import Enum

from core.mapping.field_mapper import format_price, many2one_to_id
from core.sync.entities import EntitySpec, ModuleDefinition, SyncDirection


class MembershipsEntity(str, Enum):
    PLAN = "plan"
    MEMBERSHIP = "membership"


def plan_out(values):
    values["membership"] = True
    if "list_price" in values:
        values["list_price"] = format_price(values["list_price"])
    return values


def membership_line_in(data):
    for field in ("partner_id", "membership_id"):
        if field in data:
            data[field] = many2one_to_id(data[field])
    return data


PLAN_FIELD_MAP = {
    "plan_name": "name",
    "list_price": "list_price",
}

MEMBERSHIP_LINE_FIELD_MAP = {
    "partner_id": "partner_id",
    "membership_id": "membership_id",
    "date_from": "date_from",
    "date_to": "date_to",
    "date_cancel": "date_cancel",
    "state": "state",
    "member_price": "member_price",
}


MEMBERSHIPS_MODULE = ModuleDefinition(
    id="memberships",
    name="WooCommerce Memberships",
    direction=SyncDirection.BIDIRECTIONAL,
    entity_types=MembershipsEntity,
    entities={
        MembershipsEntity.PLAN.value: EntitySpec(
            remote_model="product.product",
            field_map=PLAN_FIELD_MAP,
            dedup_fields=("name",),
            setting_key="sync_plans",
            transform_out=plan_out,
        ),
        MembershipsEntity.MEMBERSHIP.value: EntitySpec(
            remote_model="membership.membership_line",
            field_map=MEMBERSHIP_LINE_FIELD_MAP,
            setting_key="sync_memberships",
            transform_in=membership_line_in,
        ),
    },
    exclusive_group="memberships",
    exclusive_priority=20,
    default_settings={"sync_plans": True, "sync_memberships": True},
)
