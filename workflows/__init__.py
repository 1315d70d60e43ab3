"""Workflow definitions module."""

from workflows.sync_workflow import (
    SyncQueueWorkflow,
    SyncQueueWorkflowInput,
    SyncQueueWorkflowOutput,
    TASK_QUEUE_SYNC,
)

__all__ = [
    "SyncQueueWorkflow",
    "SyncQueueWorkflowInput",
    "SyncQueueWorkflowOutput",
    "TASK_QUEUE_SYNC",
]
