"""Entity Map Data Models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EntityMapEntry(BaseModel):
    """One local record paired with one remote record.

    Attributes:
        module_id: Sync module that owns the mapping (e.g. "crm")
        entity_type: Entity type within the module (e.g. "contact")
        local_id: Local record id
        remote_id: Remote (Odoo) record id
        remote_model: Remote model name (e.g. "res.partner")
        sync_hash: Hash of the last values pushed, empty when unknown
        last_synced_at: When the mapping was last written
    """
    id: Optional[int] = None
    module_id: str
    entity_type: str
    local_id: int = Field(..., gt=0)
    remote_id: int = Field(..., gt=0)
    remote_model: str = ""
    sync_hash: str = ""
    last_synced_at: Optional[datetime] = None

    class Config:
        from_attributes = True
