"""Sync Queue Data Models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Lifecycle of a queued sync job.

    pending -> processing -> completed
                          -> pending (retry scheduled)
                          -> failed
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobDirection(str, Enum):
    LOCAL_TO_REMOTE = "local_to_remote"  # push
    REMOTE_TO_LOCAL = "remote_to_local"  # pull


class SyncJob(BaseModel):
    """A queued push or pull.

    Attributes:
        module: Module id (e.g. "woocommerce")
        direction: local_to_remote (push) or remote_to_local (pull)
        entity_type: Entity type within the module
        action: create / update / delete
        local_id: Local record id (0 when unknown)
        remote_id: Remote record id (0 when unknown); set after a create
            that failed later so that the retry updates
        payload: Optional pre-loaded local data for a push
        priority: Lower runs first (1 = urgent, 5 = default)
        attempts: Attempts made so far
        scheduled_at: Not before this time (retry backoff)
        claimed_at: When a worker moved the job to processing
    """
    id: Optional[int] = None
    module: str
    direction: JobDirection
    entity_type: str
    action: str
    local_id: int = 0
    remote_id: int = 0
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 5
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_attempts: int = 3
    error_message: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0
