"""MemberPress module: plans and subscriptions on the membership models."""

from enum import Enum

from core.sync.entities import EntitySpec, ModuleDefinition, SyncDirection
from modules.memberships import (
    MEMBERSHIP_LINE_FIELD_MAP,
    PLAN_FIELD_MAP,
    membership_line_in,
    plan_out,
)


class MemberPressEntity(str, Enum):
    PLAN = "plan"
    SUBSCRIPTION = "subscription"


MEMBERPRESS_MODULE = ModuleDefinition(
    id="memberpress",
    name="MemberPress",
    direction=SyncDirection.BIDIRECTIONAL,
    entity_types=MemberPressEntity,
    entities={
        MemberPressEntity.PLAN.value: EntitySpec(
            remote_model="product.product",
            field_map=PLAN_FIELD_MAP,
            dedup_fields=("name",),
            setting_key="sync_plans",
            transform_out=plan_out,
        ),
        MemberPressEntity.SUBSCRIPTION.value: EntitySpec(
            remote_model="membership.membership_line",
            field_map=MEMBERSHIP_LINE_FIELD_MAP,
            setting_key="sync_subscriptions",
            transform_in=membership_line_in,
        ),
    },
    exclusive_group="memberships",
    exclusive_priority=10,
    default_settings={"sync_plans": True, "sync_subscriptions": True},
)
