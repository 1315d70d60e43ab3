"""Field value conversions between local records and Odoo.

Odoo conventions handled here:
- Many2one values come back as ``[id, "display_name"]`` or ``False``
- Many2many writes use command tuples: ``(6, 0, ids)`` replace,
  ``(4, id, 0)`` add, ``(0, 0, values)`` create
- Datetimes are ``"YYYY-MM-DD HH:MM:SS"`` strings, always UTC

All functions are pure. "Absent" is represented by ``None``.
"""

import html
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple


ODOO_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_ODOO_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    ODOO_DATETIME_FORMAT,
    "%Y-%m-%d",
)

_TAG_PATTERN = re.compile(r"<[^>]+>")
_BLOCK_BREAK_PATTERN = re.compile(r"<\s*(?:br|/p|/div|/li)\s*/?>", re.IGNORECASE)


# =============================================================================
# Relations
# =============================================================================

def _record_id(value: Any) -> Optional[int]:
    """Positive int id from an int or numeric string; None otherwise."""
    if isinstance(value, bool):
        return None
    try:
        record_id = int(value)
    except (TypeError, ValueError):
        return None
    return record_id if record_id > 0 else None


def many2one_to_id(value: Any) -> Optional[int]:
    """``[42, "France"]`` -> 42; a bare positive int is accepted as an id."""
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        try:
            record_id = int(value[0])
        except (TypeError, ValueError):
            return None
        return record_id if record_id > 0 else None

    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value

    return None


def many2one_to_name(value: Any) -> Optional[str]:
    """``[42, "France"]`` -> ``"France"``."""
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        return str(value[1])
    return None


def ids_to_many2many(ids: Any) -> Optional[List[Tuple[int, int, List[int]]]]:
    """``[1, 5, 10]`` -> ``[(6, 0, [1, 5, 10])]`` (replace the whole set).

    Members that are not positive ids are skipped; None when none is left.
    """
    if not ids or not isinstance(ids, (list, tuple)):
        return None
    record_ids = [record_id for record_id in map(_record_id, ids) if record_id is not None]
    if not record_ids:
        return None
    return [(6, 0, record_ids)]


def id_to_many2many_add(record_id: int) -> List[Tuple[int, int, int]]:
    return [(4, int(record_id), 0)]


def values_to_relation_create(values: Dict[str, Any]) -> List[Tuple[int, int, Dict[str, Any]]]:
    return [(0, 0, dict(values))]


def relation_to_ids(value: Any) -> List[int]:
    """One2many/Many2many read value -> list of ints (``False`` -> ``[]``).

    Members that are not positive ids are skipped.
    """
    if not isinstance(value, (list, tuple)):
        return []
    return [record_id for record_id in map(_record_id, value) if record_id is not None]


# =============================================================================
# Scalars
# =============================================================================

def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def from_bool(value: Any) -> bool:
    return bool(value)


def format_price(value: Any, decimals: int = 2) -> float:
    """Round a price for Odoo; unparsable values become 0.0."""
    if value is None or value is False or value == "":
        return 0.0
    try:
        amount = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(repr(float(value)))
    except (InvalidOperation, TypeError, ValueError):
        return 0.0
    quantum = Decimal(1).scaleb(-decimals)
    return float(amount.quantize(quantum, rounding=ROUND_HALF_UP))


def remote_datetime_to_local(value: Any) -> Optional[datetime]:
    """Odoo UTC string -> timezone-aware datetime (UTC)."""
    if not value or not isinstance(value, str):
        return None
    for fmt in _ODOO_DATETIME_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def local_datetime_to_remote(value: Any) -> str:
    """datetime or ISO string -> Odoo UTC string; naive values are taken as UTC."""
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            return ""
    if not isinstance(value, datetime):
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(ODOO_DATETIME_FORMAT)


def html_to_text(markup: Any) -> str:
    if not markup or not isinstance(markup, str):
        return ""
    text = _BLOCK_BREAK_PATTERN.sub("\n", markup)
    text = _TAG_PATTERN.sub("", text)
    return html.unescape(text).strip()


# =============================================================================
# Field maps
# =============================================================================

def map_fields(data: Dict[str, Any], field_map: Dict[str, str]) -> Dict[str, Any]:
    """Rename local keys to remote keys; keys missing from ``data`` are skipped."""
    return {
        remote_field: data[local_field]
        for local_field, remote_field in field_map.items()
        if local_field in data
    }


def map_fields_reverse(data: Dict[str, Any], field_map: Dict[str, str]) -> Dict[str, Any]:
    """Rename remote keys back to local keys."""
    return {
        local_field: data[remote_field]
        for local_field, remote_field in field_map.items()
        if remote_field in data
    }
