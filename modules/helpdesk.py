"""Helpdesk module: support tickets, both directions."""

from enum import Enum

from core.mapping.field_mapper import html_to_text, many2one_to_id
from core.sync.entities import EntitySpec, ModuleDefinition, SyncDirection


class HelpdeskEntity(str, Enum):
    TICKET = "ticket"


def _ticket_in(data):
    if "partner_id" in data:
        data["partner_id"] = many2one_to_id(data["partner_id"])
    if "description" in data:
        data["description"] = html_to_text(data["description"])
    return data


HELPDESK_MODULE = ModuleDefinition(
    id="helpdesk",
    name="Helpdesk",
    direction=SyncDirection.BIDIRECTIONAL,
    entity_types=HelpdeskEntity,
    entities={
        HelpdeskEntity.TICKET.value: EntitySpec(
            remote_model="helpdesk.ticket",
            field_map={
                "name": "name",
                "description": "description",
                "partner_id": "partner_id",
                "priority": "priority",
            },
            dedup_fields=("name",),
            setting_key="sync_tickets",
            transform_in=_ticket_in,
        ),
    },
    exclusive_group="helpdesk",
    default_settings={"sync_tickets": True},
)
