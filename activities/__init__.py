"""Activity definitions module."""

from activities.sync import (
    process_sync_queue,
    ProcessQueueInput,
    ProcessQueueOutput,
    get_runtime,
    set_runtime,
)

__all__ = [
    "process_sync_queue",
    "ProcessQueueInput",
    "ProcessQueueOutput",
    "get_runtime",
    "set_runtime",
]
