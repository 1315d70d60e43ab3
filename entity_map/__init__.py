"""Entity Map - durable local id <-> remote id mapping per module/entity type."""

from entity_map.models import EntityMapEntry
from entity_map.db import EntityMapRepository, init_entity_map_db

__all__ = [
    "EntityMapEntry",
    "EntityMapRepository",
    "init_entity_map_db",
]
