"""Sync Engine - drains the sync queue.

For each due job:
1. Claim it (pending -> processing); skip if another worker got it first
2. Dispatch to the owning module's push or pull
3. completed on success; on failure either reschedule with exponential
   backoff (transient errors, attempts left) or mark failed

Before fetching, jobs stuck in processing longer than the stale timeout
are requeued. After each batch, pull translations buffered by the touched
modules are flushed.

A circuit breaker pauses processing while Odoo is unreachable: after N
consecutive transient remote failures it opens, and batches are skipped
until the recovery delay has passed. The next batch then runs as a probe;
any job that reaches Odoo closes the breaker again.
"""

import random
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Set

from core.config import SyncSettings
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import record_job_outcome, record_processing_time
from core.sync.registry import ModuleRegistry
from core.sync.results import ErrorType, SyncResult
from sync_queue.db import SyncQueueRepository
from sync_queue.models import JobDirection, JobStatus, SyncJob

logger = get_logger(__name__)


BASE_RETRY_DELAY_SECONDS = 60
MAX_RETRY_JITTER_SECONDS = 60
MAX_ERROR_MESSAGE_LENGTH = 65535
DEFAULT_BREAKER_THRESHOLD = 3
DEFAULT_BREAKER_RECOVERY_SECONDS = 300


def compute_retry_delay(attempts: int, jitter: Optional[int] = None) -> int:
    """Seconds before retry number ``attempts``: 2^attempts * 60 + jitter."""
    if jitter is None:
        jitter = random.randint(0, MAX_RETRY_JITTER_SECONDS)
    return int((2 ** attempts) * BASE_RETRY_DELAY_SECONDS) + jitter


class CircuitBreaker:
    """Open after consecutive transient failures, half-open after a delay.

    Usage:
        breaker = CircuitBreaker(failure_threshold=3, recovery_seconds=300)
        if breaker.is_available():
            ...
            breaker.record_failure()  # or record_success()
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_BREAKER_THRESHOLD,
        recovery_seconds: float = DEFAULT_BREAKER_RECOVERY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_seconds = recovery_seconds
        self._clock = clock
        self.consecutive_failures = 0
        self.opened_at: Optional[float] = None
        self._probing = False

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def is_available(self) -> bool:
        """True when closed, or when the recovery delay allows a probe."""
        if self.opened_at is None:
            return True
        if self._clock() - self.opened_at >= self.recovery_seconds:
            if not self._probing:
                logger.info("Circuit breaker half-open, allowing probe batch")
                self._probing = True
            return True
        return False

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("Circuit breaker closed, Odoo reachable again")
        self.consecutive_failures = 0
        self.opened_at = None
        self._probing = False

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures < self.failure_threshold:
            return
        # A failed probe restarts the recovery delay
        self.opened_at = self._clock()
        self._probing = False
        logger.warning(
            "Circuit breaker open, queue processing paused",
            extra_fields={
                "failures": self.consecutive_failures,
                "recovery_seconds": self.recovery_seconds,
            },
        )


class SyncEngine:
    """Batch processor for queued push/pull jobs.

    Usage:
        engine = SyncEngine(registry, queue, settings)
        processed = await engine.process_queue()
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        queue: SyncQueueRepository,
        settings: Optional[SyncSettings] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.registry = registry
        self.queue = queue
        self.settings = settings or SyncSettings()
        self.dry_run = self.settings.dry_run
        self.breaker = breaker or CircuitBreaker(
            self.settings.breaker_failure_threshold,
            self.settings.breaker_recovery_seconds,
        )
        self.module_outcomes: Dict[str, Dict[str, int]] = {}

    async def process_queue(self, batch_size: Optional[int] = None, module: Optional[str] = None) -> int:
        """Process one batch of due jobs.

        Args:
            batch_size: Max jobs to fetch (defaults to settings.batch_size)
            module: Only process jobs of this module

        Returns:
            Number of jobs processed (succeeded or failed)
        """
        if not self.breaker.is_available():
            logger.info("Queue processing skipped, circuit breaker open (Odoo unreachable)")
            return 0

        batch_size = batch_size or self.settings.batch_size
        start = time.monotonic()

        self.queue.recover_stale_processing(self.settings.stale_timeout_seconds)
        jobs = self.queue.fetch_pending(batch_size, module=module)

        processed = 0
        touched: Set[str] = set()

        for index, job in enumerate(jobs):
            if not self.breaker.is_available():
                logger.warning(
                    "Circuit breaker opened mid-batch, remaining jobs left pending",
                    extra_fields={"remaining": len(jobs) - index},
                )
                break
            if not self.queue.claim_job(job.id):
                continue
            with with_correlation(module_id=job.module, entity_type=job.entity_type, job_id=job.id):
                await self._process_job(job)
            touched.add(job.module)
            processed += 1

        for module_id in sorted(touched):
            sync_module = self.registry.get(module_id)
            if sync_module is not None:
                await sync_module.flush_pull_translations()

        if processed:
            duration_ms = (time.monotonic() - start) * 1000
            record_processing_time("queue_batch", duration_ms)
            logger.info(
                f"Processed {processed} sync job(s)",
                extra_fields={"duration_ms": round(duration_ms, 1)},
            )
        return processed

    async def _process_job(self, job: SyncJob) -> None:
        start = time.monotonic()

        if self.dry_run:
            logger.info(
                f"[dry-run] Would {job.action} {job.entity_type} ({job.direction.value})",
                extra_fields={"local_id": job.local_id, "remote_id": job.remote_id},
            )
            self.queue.update_status(job.id, JobStatus.COMPLETED, processed_at=datetime.utcnow())
            return

        try:
            result = await self._dispatch(job)
        except Exception as e:
            # push/pull capture remote failures; this is local collaborator code
            logger.exception(f"Unexpected error in sync job {job.id}: {type(e).__name__}: {e}")
            result = SyncResult.failure(f"{type(e).__name__}: {e}", ErrorType.TRANSIENT)
        else:
            self._update_breaker(result)
        duration_ms = (time.monotonic() - start) * 1000

        if result.succeeded:
            extra = {"processed_at": datetime.utcnow(), "error_message": None}
            if result.entity_id:
                if job.direction == JobDirection.LOCAL_TO_REMOTE and not job.remote_id:
                    extra["remote_id"] = result.entity_id
                elif job.direction == JobDirection.REMOTE_TO_LOCAL and not job.local_id:
                    extra["local_id"] = result.entity_id
            self.queue.update_status(job.id, JobStatus.COMPLETED, **extra)
        else:
            self.handle_failure(job, result)

        self._record_outcome(job.module, result.succeeded)
        record_job_outcome(job.module, result.succeeded, duration_ms)

    def _update_breaker(self, result: SyncResult) -> None:
        if result.succeeded or result.error_type == ErrorType.PERMANENT:
            self.breaker.record_success()
        else:
            self.breaker.record_failure()

    async def _dispatch(self, job: SyncJob) -> SyncResult:
        module = self.registry.get(job.module)
        if module is None or not self.registry.is_booted(job.module):
            return SyncResult.failure(f"Module '{job.module}' is not active.", ErrorType.PERMANENT)

        if job.direction == JobDirection.LOCAL_TO_REMOTE:
            return await module.push(
                job.entity_type,
                job.action,
                job.local_id,
                job.remote_id or None,
                job.payload or None,
            )
        return await module.pull(job.entity_type, job.action, job.remote_id, job.local_id or None)

    def handle_failure(self, job: SyncJob, result: SyncResult) -> None:
        """Reschedule a transient failure with backoff, or fail the job."""
        attempts = job.attempts + 1
        error_type = result.error_type or ErrorType.TRANSIENT
        error_message = (result.error or "Unknown error")[:MAX_ERROR_MESSAGE_LENGTH]

        extra = {"attempts": attempts, "error_message": error_message}
        # Keep the created remote id so the retry updates instead of creating again
        if job.direction == JobDirection.LOCAL_TO_REMOTE and result.entity_id and not job.remote_id:
            extra["remote_id"] = result.entity_id

        if error_type == ErrorType.TRANSIENT and attempts < job.max_attempts:
            scheduled_at = datetime.utcnow() + timedelta(seconds=compute_retry_delay(attempts))
            self.queue.update_status(job.id, JobStatus.PENDING, scheduled_at=scheduled_at, **extra)
            logger.warning(
                "Sync job failed, will retry",
                extra_fields={
                    "attempt": attempts,
                    "retry_at": scheduled_at.isoformat(),
                    "error": error_message,
                    "error_type": error_type.value,
                },
            )
        else:
            self.queue.update_status(job.id, JobStatus.FAILED, processed_at=datetime.utcnow(), **extra)
            logger.error(
                "Sync job permanently failed",
                extra_fields={"error": error_message, "error_type": error_type.value},
            )

    def _record_outcome(self, module_id: str, succeeded: bool) -> None:
        outcome = self.module_outcomes.setdefault(module_id, {"successes": 0, "failures": 0})
        outcome["successes" if succeeded else "failures"] += 1
