"""Field mapping between local records and the remote ERP.

Stateless conversions (relations, booleans, prices, datetimes) plus the
field-map application used by every sync module.
"""

from core.mapping.field_mapper import (
    many2one_to_id,
    many2one_to_name,
    ids_to_many2many,
    id_to_many2many_add,
    values_to_relation_create,
    relation_to_ids,
    to_bool,
    from_bool,
    format_price,
    remote_datetime_to_local,
    local_datetime_to_remote,
    html_to_text,
    map_fields,
    map_fields_reverse,
)

__all__ = [
    "many2one_to_id",
    "many2one_to_name",
    "ids_to_many2many",
    "id_to_many2many_add",
    "values_to_relation_create",
    "relation_to_ids",
    "to_bool",
    "from_bool",
    "format_price",
    "remote_datetime_to_local",
    "local_datetime_to_remote",
    "html_to_text",
    "map_fields",
    "map_fields_reverse",
]
