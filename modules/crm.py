"""CRM module: contacts and leads, both directions."""

from enum import Enum

from core.mapping.field_mapper import many2one_to_id
from core.sync.entities import EntitySpec, ModuleDefinition, SyncDirection


class CrmEntity(str, Enum):
    CONTACT = "contact"
    LEAD = "lead"


def _contact_in(data):
    for field in ("billing_country", "billing_state"):
        if field in data:
            data[field] = many2one_to_id(data[field])
    return data


CRM_MODULE = ModuleDefinition(
    id="crm",
    name="CRM",
    direction=SyncDirection.BIDIRECTIONAL,
    entity_types=CrmEntity,
    entities={
        CrmEntity.CONTACT.value: EntitySpec(
            remote_model="res.partner",
            field_map={
                "display_name": "name",
                "user_email": "email",
                "description": "comment",
                "first_name": "x_first_name",
                "last_name": "x_last_name",
                "billing_phone": "phone",
                "billing_company": "company_name",
                "billing_address_1": "street",
                "billing_address_2": "street2",
                "billing_city": "city",
                "billing_postcode": "zip",
                "billing_country": "country_id",
                "billing_state": "state_id",
                "user_url": "website",
            },
            dedup_fields=("email",),
            setting_key="sync_users_as_contacts",
            transform_in=_contact_in,
        ),
        CrmEntity.LEAD.value: EntitySpec(
            remote_model="crm.lead",
            field_map={
                "name": "name",
                "email": "email_from",
                "phone": "phone",
                "company": "partner_name",
                "description": "description",
            },
            dedup_fields=("email_from",),
            setting_key="lead_form_enabled",
        ),
    },
    default_settings={
        "sync_users_as_contacts": True,
        "archive_on_delete": True,
        "lead_form_enabled": True,
    },
)
