"""Sync queue activities.

One activity drains one batch of the sync queue. The runtime (client,
registry, engine) is built once per worker process and reused across
activity runs so that the session and the entity map cache survive.
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from temporalio import activity

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import load_settings
from core.observability.logging import with_correlation
from core.observability.metrics import get_metrics
from sync_queue.runtime import SyncRuntime, build_runtime


_runtime: Optional[SyncRuntime] = None


def set_runtime(runtime: Optional[SyncRuntime]) -> None:
    """Install the runtime used by the activities (worker startup, tests)."""
    global _runtime
    _runtime = runtime


def get_runtime() -> SyncRuntime:
    """Return the installed runtime, building it from the environment on first use."""
    global _runtime
    if _runtime is None:
        _runtime = build_runtime(load_settings())
    return _runtime


@dataclass
class ProcessQueueInput:
    """Input for process_sync_queue activity.

    Attributes:
        batch_size: Max jobs to process (0 = settings default)
        module: Only process jobs of this module (empty = all)
    """
    batch_size: int = 0
    module: str = ""


@dataclass
class ProcessQueueOutput:
    """Output from process_sync_queue activity.

    Attributes:
        processed: Jobs processed in this batch
        pending: Jobs still pending after the batch
        failed: Jobs in failed state
        active_modules: Ids of the booted modules
        outcomes: module_id -> {"successes", "failures"} since worker start
    """
    processed: int
    pending: int
    failed: int
    active_modules: List[str] = field(default_factory=list)
    outcomes: Dict[str, Dict[str, int]] = field(default_factory=dict)


@activity.defn
async def process_sync_queue(input: ProcessQueueInput) -> ProcessQueueOutput:
    """Process one batch of due sync jobs."""
    runtime = get_runtime()
    info = activity.info()

    with with_correlation(workflow_id=info.workflow_id, activity_id=info.activity_id):
        activity.logger.info(
            f"Processing sync queue batch (size={input.batch_size or runtime.settings.batch_size}, "
            f"module={input.module or 'all'})"
        )
        processed = await runtime.engine.process_queue(
            batch_size=input.batch_size or None,
            module=input.module or None,
        )

    stats = runtime.queue.get_stats()
    activity.logger.info(
        f"Sync batch done: processed={processed}, pending={stats.pending}, failed={stats.failed}, "
        f"rpc_calls={get_metrics().get_summary()['rpc']['calls']}"
    )

    return ProcessQueueOutput(
        processed=processed,
        pending=stats.pending,
        failed=stats.failed,
        active_modules=[module.id for module in runtime.registry.booted()],
        outcomes={k: dict(v) for k, v in runtime.engine.module_outcomes.items()},
    )
