"""Sync Queue - persistent push/pull jobs with retry backoff.

Local changes and webhooks enqueue jobs; SyncEngine drains them in batches
(from the Temporal activity or a script).
"""

from sync_queue.models import JobDirection, JobStatus, QueueStats, SyncJob
from sync_queue.db import SyncQueueRepository, init_sync_queue_db
from sync_queue.engine import SyncEngine, compute_retry_delay

__all__ = [
    "JobDirection",
    "JobStatus",
    "QueueStats",
    "SyncJob",
    "SyncQueueRepository",
    "init_sync_queue_db",
    "SyncEngine",
    "compute_retry_delay",
]
