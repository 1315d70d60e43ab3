"""Start a sync queue workflow on Temporal.

This script connects to Temporal, starts a SyncQueueWorkflow on the
erp-sync task queue, and prints the batch summary.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from workflows.sync_workflow import SyncQueueWorkflow, SyncQueueWorkflowInput, TASK_QUEUE_SYNC


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def start_sync_workflow(batch_size: int = 0, module: str = "", max_batches: int = 10):
    """Start SyncQueueWorkflow and wait for its output.

    Raises:
        Exception: If workflow execution fails
    """
    logger.info("Starting sync queue workflow...")

    try:
        client = await get_temporal_client()
        logger.info(f"Connected to Temporal: {client.namespace}")

        handle = await client.start_workflow(
            SyncQueueWorkflow.run,
            SyncQueueWorkflowInput(batch_size=batch_size, module=module, max_batches=max_batches),
            task_queue=TASK_QUEUE_SYNC,
            id=f"sync-queue-{module or 'all'}-{int(asyncio.get_event_loop().time() * 1000)}",
        )

        logger.info(f"Workflow started: {handle.id}")
        result = await handle.result()
        logger.info(f"Workflow completed: {result.processed} job(s) processed")
        return result

    except Exception as e:
        logger.error(f"Workflow failed: {e}", exc_info=True)
        raise


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Run the sync queue once via Temporal")
    parser.add_argument("--batch-size", type=int, default=0)
    parser.add_argument("--module", default="")
    parser.add_argument("--max-batches", type=int, default=10)
    args = parser.parse_args()

    try:
        result = asyncio.run(start_sync_workflow(args.batch_size, args.module, args.max_batches))
        print(f"processed={result.processed} pending={result.pending} failed={result.failed}")
        for module_id, outcome in sorted(result.outcomes.items()):
            print(f"  {module_id}: {outcome.get('successes', 0)} ok, {outcome.get('failures', 0)} failed")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
