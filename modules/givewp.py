"""GiveWP module: donation forms and donations, pushed only."""

from enum import Enum

from core.mapping.field_mapper import format_price, local_datetime_to_remote
from core.sync.entities import EntitySpec, ModuleDefinition, SyncDirection


class GiveWPEntity(str, Enum):
    FORM = "form"
    DONATION = "donation"


def _form_out(values):
    values.setdefault("type", "service")
    if "list_price" in values:
        values["list_price"] = format_price(values["list_price"])
    return values


def _donation_out(values):
    if "amount" in values:
        values["amount"] = format_price(values["amount"])
    if "donation_date" in values:
        values["donation_date"] = local_datetime_to_remote(values["donation_date"])
    return values


def _donation_domain(values):
    # Payment keys are unique per donation on the local side
    if not values.get("payment_ref"):
        return []
    return [("payment_ref", "=", values["payment_ref"])]


GIVEWP_MODULE = ModuleDefinition(
    id="givewp",
    name="GiveWP",
    direction=SyncDirection.LOCAL_TO_REMOTE,
    entity_types=GiveWPEntity,
    entities={
        GiveWPEntity.FORM.value: EntitySpec(
            remote_model="product.product",
            field_map={
                "form_name": "name",
                "list_price": "list_price",
                "type": "type",
            },
            dedup_fields=("name",),
            setting_key="sync_forms",
            transform_out=_form_out,
        ),
        GiveWPEntity.DONATION.value: EntitySpec(
            remote_model="donation.donation",
            field_map={
                "partner_id": "partner_id",
                "amount": "amount",
                "donation_date": "donation_date",
                "payment_key": "payment_ref",
            },
            dedup_domain=_donation_domain,
            setting_key="sync_donations",
            transform_out=_donation_out,
        ),
    },
    default_settings={"sync_forms": True, "sync_donations": True},
)
