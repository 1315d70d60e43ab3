"""Worker for the ERP sync engine.

Runs on Temporal, listens on the erp-sync task queue and executes the
sync queue workflow and its activity.

The sync runtime (Odoo client, registry, queue) is built at startup from
the environment so that configuration errors surface before polling starts.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from activities.sync import process_sync_queue, set_runtime
from core.config import load_settings
from core.observability.logging import configure_logging, get_logger
from sync_queue.runtime import build_runtime
from workflows.sync_workflow import SyncQueueWorkflow, TASK_QUEUE_SYNC


logger = get_logger(__name__)

SYNC_WORKFLOWS = [SyncQueueWorkflow]
SYNC_ACTIVITIES = [process_sync_queue]


async def run_worker(task_queue: str = TASK_QUEUE_SYNC, env_file: str = None):
    """Start worker listening on the sync task queue.

    Args:
        task_queue: Task queue to poll
        env_file: Optional .env file with ODOO_* / SYNC_* settings

    Raises:
        Exception: If connection to Temporal fails
    """
    client = None
    runtime = build_runtime(load_settings(Path(env_file) if env_file else None))
    set_runtime(runtime)
    logger.info(
        f"Sync runtime ready: {runtime.registry.get_booted_count()} active module(s)",
        extra_fields={"modules": ",".join(m.id for m in runtime.registry.booted())},
    )

    try:
        client = await get_temporal_client()
        logger.info(f"Connected to Temporal: {client.namespace}")

        worker = Worker(
            client,
            task_queue=task_queue,
            workflows=SYNC_WORKFLOWS,
            activities=SYNC_ACTIVITIES,
        )

        logger.info(f"Worker created for queue '{task_queue}':")
        logger.info(f"  - Workflows: {len(SYNC_WORKFLOWS)}")
        logger.info(f"  - Activities: {len(SYNC_ACTIVITIES)}")

        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise
    finally:
        await runtime.close()
        set_runtime(None)
        logger.info("Sync runtime closed")


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="ERP Sync Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=TASK_QUEUE_SYNC,
        help=f"Task queue to poll (default: {TASK_QUEUE_SYNC})"
    )
    parser.add_argument(
        "--env-file", "-e",
        default=None,
        help="Path to a .env file (default: repo-root .env)"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON structured logs"
    )

    args = parser.parse_args()
    configure_logging(json_format=args.json_logs)
    asyncio.run(run_worker(task_queue=args.queue, env_file=args.env_file))


if __name__ == "__main__":
    main()
