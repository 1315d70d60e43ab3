"""Sync Queue Workflow

Drains the sync queue in batches:
PROCESS_BATCH → (repeat while the batch was full, up to max_batches) → DONE

Retries live in the RPC client (one session refresh) and in the queue
(exponential backoff per job), so the activity runs with a single attempt.
Schedule this workflow (e.g. every minute) to get continuous processing.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.sync import ProcessQueueInput, ProcessQueueOutput, process_sync_queue


TASK_QUEUE_SYNC = "erp-sync"


# =============================================================================
# Workflow Input/Output
# =============================================================================

@dataclass
class SyncQueueWorkflowInput:
    """Input for sync queue workflow.

    Attributes:
        batch_size: Jobs per batch (0 = settings default)
        module: Restrict to one module (empty = all)
        max_batches: Upper bound on batches per run
    """
    batch_size: int = 0
    module: str = ""
    max_batches: int = 10


@dataclass
class SyncQueueWorkflowOutput:
    """Output from sync queue workflow"""
    batches: int = 0
    processed: int = 0
    pending: int = 0
    failed: int = 0
    active_modules: List[str] = field(default_factory=list)
    outcomes: Dict[str, Dict[str, int]] = field(default_factory=dict)


# =============================================================================
# Sync Queue Workflow
# =============================================================================

@workflow.defn
class SyncQueueWorkflow:
    """Run process_sync_queue until the queue has no more due work."""

    @workflow.run
    async def run(self, input: SyncQueueWorkflowInput) -> SyncQueueWorkflowOutput:
        workflow.logger.info(f"Starting sync queue workflow (module={input.module or 'all'})")

        activity_options = {
            "start_to_close_timeout": timedelta(minutes=10),
            "retry_policy": RetryPolicy(maximum_attempts=1),
        }

        output = SyncQueueWorkflowOutput()

        for _ in range(max(1, input.max_batches)):
            batch: ProcessQueueOutput = await workflow.execute_activity(
                process_sync_queue,
                ProcessQueueInput(batch_size=input.batch_size, module=input.module),
                **activity_options,
            )
            output.batches += 1
            output.processed += batch.processed
            output.pending = batch.pending
            output.failed = batch.failed
            output.active_modules = batch.active_modules
            output.outcomes = batch.outcomes

            # An empty batch means nothing else is due; backed-off jobs wait for the next run
            if batch.processed == 0:
                break

        workflow.logger.info(
            f"Sync queue workflow done: {output.processed} job(s) in {output.batches} batch(es), "
            f"{output.pending} pending"
        )
        return output
