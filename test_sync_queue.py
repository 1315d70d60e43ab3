"""
Sync Queue and Engine Tests

1. Enqueue deduplicates pending jobs
2. Fetch order (priority, then age) and due-time filtering
3. Engine dispatch: completed / retry with backoff / failed
4. A remote id created before a failure is kept on the job
5. Maintenance: stats, stale recovery, retry_failed, cleanup, cancel
6. Circuit breaker pauses processing while Odoo is unreachable
"""

import asyncio
import sqlite3
from datetime import datetime, timedelta

import pytest

from connectors.rpc_base import RemoteCallError
from core.config import ModuleSettings
from core.sync.module import SyncModule
from core.sync.registry import ModuleRegistry
from core.sync.results import ErrorType, SyncResult
from modules.crm import CRM_MODULE
from modules.woocommerce import WOOCOMMERCE_MODULE
from sync_queue.db import SyncQueueRepository
from sync_queue.engine import CircuitBreaker, SyncEngine, compute_retry_delay
from sync_queue.models import JobDirection, JobStatus

from conftest import make_settings


class TestEnqueue:
    """Job creation and dedup."""

    def test_enqueue_creates_pending_job(self, queue):
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=12, payload={"a": 1})
        job = queue.get_job(job_id)

        assert job.status == JobStatus.PENDING
        assert job.direction == JobDirection.LOCAL_TO_REMOTE
        assert job.payload == {"a": 1}
        assert job.attempts == 0
        assert job.max_attempts == 3
        assert job.created_at is not None

    def test_pending_push_is_deduplicated(self, queue):
        first = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=12)
        second = queue.enqueue("crm", "local_to_remote", "contact", "update", local_id=12, priority=1)

        assert first == second
        job = queue.get_job(first)
        assert job.action == "update"
        assert job.priority == 1
        assert queue.get_stats().total == 1

    def test_pending_pull_deduplicated_by_remote_id(self, queue):
        first = queue.enqueue("sales", "remote_to_local", "order", "create", remote_id=9)
        second = queue.enqueue("sales", "remote_to_local", "order", "update", remote_id=9)
        other = queue.enqueue("sales", "remote_to_local", "order", "update", remote_id=10)

        assert first == second
        assert other != first

    def test_processing_job_is_not_deduplicated(self, queue):
        first = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=12)
        queue.claim_job(first)
        second = queue.enqueue("crm", "local_to_remote", "contact", "update", local_id=12)

        assert second != first

    def test_rejects_bad_direction_and_missing_ids(self, queue):
        with pytest.raises(ValueError):
            queue.enqueue("crm", "sideways", "contact", "create", local_id=1)
        with pytest.raises(ValueError):
            queue.enqueue("crm", "local_to_remote", "contact", "create")


class TestFetch:
    """Due jobs by priority then age."""

    def test_priority_then_age(self, queue):
        low = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1, priority=9)
        old = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=2)
        new = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=3)
        urgent = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=4, priority=1)

        assert [j.id for j in queue.fetch_pending(10)] == [urgent, old, new, low]
        assert [j.id for j in queue.fetch_pending(2)] == [urgent, old]

    def test_scheduled_jobs_wait(self, queue):
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)
        queue.update_status(job_id, JobStatus.PENDING, scheduled_at=datetime.utcnow() + timedelta(minutes=5))

        assert queue.fetch_pending(10) == []
        later = datetime.utcnow() + timedelta(minutes=6)
        assert [j.id for j in queue.fetch_pending(10, now=later)] == [job_id]

    def test_module_filter(self, queue):
        queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)
        wc = queue.enqueue("woocommerce", "local_to_remote", "product", "create", local_id=1)

        assert [j.id for j in queue.fetch_pending(10, module="woocommerce")] == [wc]

    def test_claim_is_exclusive(self, queue):
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)

        assert queue.claim_job(job_id) is True
        assert queue.claim_job(job_id) is False
        assert queue.get_job(job_id).status == JobStatus.PROCESSING

    def test_update_status_rejects_unknown_columns(self, queue):
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)
        with pytest.raises(ValueError):
            queue.update_status(job_id, JobStatus.FAILED, module="other")


class TestMaintenance:
    """Stats, retry, cleanup, cancel."""

    def test_stats_and_retry_failed(self, queue):
        a = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)
        b = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=2)
        queue.update_status(a, JobStatus.FAILED, attempts=3, error_message="boom")
        queue.update_status(b, JobStatus.COMPLETED)

        stats = queue.get_stats()
        assert (stats.pending, stats.failed, stats.completed, stats.total) == (0, 1, 1, 2)

        assert queue.retry_failed() == 1
        job = queue.get_job(a)
        assert job.status == JobStatus.PENDING
        assert job.attempts == 0
        assert job.error_message is None

    def test_cleanup_removes_old_finished_jobs(self, queue, db_path):
        old = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)
        recent = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=2)
        pending = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=3)
        queue.update_status(old, JobStatus.COMPLETED)
        queue.update_status(recent, JobStatus.COMPLETED)

        conn = sqlite3.connect(db_path)
        try:
            conn.execute(
                "UPDATE sync_queue SET created_at = ? WHERE id IN (?, ?)",
                ((datetime.utcnow() - timedelta(days=30)).isoformat(timespec="microseconds"), old, pending),
            )
            conn.commit()
        finally:
            conn.close()

        assert queue.cleanup(days_old=7) == 1
        assert queue.get_job(old) is None
        assert queue.get_job(recent) is not None
        assert queue.get_job(pending) is not None

    def test_cancel_only_pending(self, queue):
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)
        queue.claim_job(job_id)
        assert queue.cancel(job_id) is False

        other = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=2)
        assert queue.cancel(other) is True
        assert queue.get_job(other) is None


    def test_claim_records_claimed_at(self, queue):
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)
        claimed = datetime(2024, 5, 1, 12, 0, 0)

        assert queue.claim_job(job_id, now=claimed) is True
        assert queue.claim_job(job_id) is False

        job = queue.get_job(job_id)
        assert job.status == JobStatus.PROCESSING
        assert job.claimed_at == claimed

    def test_recover_stale_processing(self, queue):
        stale = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)
        fresh = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=2)
        now = datetime.utcnow()
        queue.claim_job(stale, now=now - timedelta(minutes=20))
        queue.claim_job(fresh, now=now - timedelta(minutes=2))

        assert queue.recover_stale_processing(600, now=now) == 1

        job = queue.get_job(stale)
        assert job.status == JobStatus.PENDING
        assert job.claimed_at is None
        assert job.attempts == 0
        assert queue.get_job(fresh).status == JobStatus.PROCESSING
        assert [j.id for j in queue.fetch_pending(10)] == [stale]

    def test_schema_without_claimed_at_is_upgraded(self, db_path):
        conn = sqlite3.connect(db_path)
        try:
            conn.execute("""
                CREATE TABLE sync_queue (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    module TEXT NOT NULL,
                    direction TEXT NOT NULL,
                    entity_type TEXT NOT NULL,
                    action TEXT NOT NULL,
                    local_id INTEGER NOT NULL DEFAULT 0,
                    remote_id INTEGER NOT NULL DEFAULT 0,
                    payload TEXT DEFAULT '{}',
                    priority INTEGER NOT NULL DEFAULT 5,
                    status TEXT NOT NULL DEFAULT 'pending',
                    attempts INTEGER NOT NULL DEFAULT 0,
                    max_attempts INTEGER NOT NULL DEFAULT 3,
                    error_message TEXT,
                    scheduled_at TEXT,
                    created_at TEXT NOT NULL,
                    processed_at TEXT
                )
            """)
            conn.commit()
        finally:
            conn.close()

        queue = SyncQueueRepository(db_path)
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)

        assert queue.claim_job(job_id) is True
        assert queue.get_job(job_id).claimed_at is not None


class TestBackoff:
    """2^attempts * 60s + jitter."""

    @pytest.mark.parametrize("attempts,jitter,expected", [
        (1, 0, 120),
        (2, 30, 270),
        (3, 60, 540),
    ])
    def test_compute_retry_delay(self, attempts, jitter, expected):
        assert compute_retry_delay(attempts, jitter=jitter) == expected

    def test_random_jitter_range(self):
        for _ in range(20):
            assert 240 <= compute_retry_delay(2) <= 300


@pytest.fixture
def engine_setup(db_path, store, client, entity_map, queue):
    settings = make_settings(db_path, enabled=["crm", "woocommerce"], translation_languages=["fr_FR"])
    registry = ModuleRegistry()
    for definition in (CRM_MODULE, WOOCOMMERCE_MODULE):
        registry.register(definition.id, SyncModule(
            definition, store, client, entity_map,
            settings.module(definition.id), queue=queue, languages=settings.translation_languages,
        ))
    return SyncEngine(registry, queue, settings)


class TestSyncEngine:
    """Queue processing outcomes."""

    def test_push_job_completes(self, engine_setup, queue, store, transport):
        local_id = store.add("contact", {"display_name": "Ada"})
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=local_id)

        assert asyncio.run(engine_setup.process_queue()) == 1

        job = queue.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.remote_id in transport.records["res.partner"]
        assert job.processed_at is not None
        assert engine_setup.module_outcomes["crm"] == {"successes": 1, "failures": 0}

    def test_transient_failure_is_rescheduled(self, engine_setup, queue, store, transport):
        local_id = store.add("contact", {"display_name": "Ada"})
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=local_id)
        transport.fail_next("create", RemoteCallError("Bad Gateway", status_code=502))

        before = datetime.utcnow()
        asyncio.run(engine_setup.process_queue())

        job = queue.get_job(job_id)
        assert job.status == JobStatus.PENDING
        assert job.attempts == 1
        assert "Bad Gateway" in job.error_message
        assert before + timedelta(seconds=120) <= job.scheduled_at <= datetime.utcnow() + timedelta(seconds=181)
        # Not due yet
        assert asyncio.run(engine_setup.process_queue()) == 0

    def test_permanent_failure_fails_immediately(self, engine_setup, queue, store, transport):
        local_id = store.add("contact", {"display_name": "Ada"})
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=local_id)
        transport.fail_next("create", RemoteCallError("Invalid field 'name'", status_code=200))

        asyncio.run(engine_setup.process_queue())

        job = queue.get_job(job_id)
        assert job.status == JobStatus.FAILED
        assert job.attempts == 1
        assert engine_setup.module_outcomes["crm"]["failures"] == 1

    def test_last_attempt_fails_job(self, engine_setup, queue, store, transport):
        local_id = store.add("contact", {"display_name": "Ada"})
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=local_id, max_attempts=1)
        transport.fail_next("create", RemoteCallError("Bad Gateway", status_code=502))

        asyncio.run(engine_setup.process_queue())

        assert queue.get_job(job_id).status == JobStatus.FAILED

    def test_failure_keeps_created_remote_id(self, engine_setup, queue):
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=4)
        job = queue.get_job(job_id)

        engine_setup.handle_failure(
            job, SyncResult.failure("Mapping save failed", ErrorType.TRANSIENT, entity_id=55),
        )

        job = queue.get_job(job_id)
        assert job.remote_id == 55
        assert job.status == JobStatus.PENDING

    def test_retry_after_failure_updates_instead_of_creating(self, engine_setup, queue, store, transport):
        local_id = store.add("contact", {"display_name": "Ada"})
        remote_id = transport.add_record("res.partner", {"name": "Ada"})
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=local_id, remote_id=remote_id)

        asyncio.run(engine_setup.process_queue())

        assert queue.get_job(job_id).status == JobStatus.COMPLETED
        assert "create" not in transport.methods_called()
        assert "write" in transport.methods_called()

    def test_unknown_module_fails_permanently(self, engine_setup, queue):
        job_id = queue.enqueue("bookings", "local_to_remote", "booking", "create", local_id=1)

        asyncio.run(engine_setup.process_queue())

        job = queue.get_job(job_id)
        assert job.status == JobStatus.FAILED
        assert "not active" in job.error_message

    def test_pull_job_flushes_translations(self, engine_setup, queue, store, transport):
        remote_id = transport.add_record("product.template", {"name": "Chair", "default_code": "CH-1"})
        transport.translations[("product.template", remote_id, "fr_FR")] = {"name": "Chaise"}
        job_id = queue.enqueue("woocommerce", "remote_to_local", "product", "create", remote_id=remote_id)

        asyncio.run(engine_setup.process_queue())

        job = queue.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert store.translations[("product", job.local_id, "fr_FR")] == {"name": "Chaise"}
        assert engine_setup.registry.get("woocommerce").translations.pending_count() == 0

    def test_dry_run_skips_dispatch(self, db_path, queue, store, transport, engine_setup):
        engine_setup.dry_run = True
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=store.add("contact", {"display_name": "Ada"}))

        asyncio.run(engine_setup.process_queue())

        assert queue.get_job(job_id).status == JobStatus.COMPLETED
        assert transport.calls == []

    def test_module_setting_reload_applies(self, engine_setup, queue, store, transport):
        module = engine_setup.registry.get("crm")
        module.reload_settings(ModuleSettings(enabled=True, options={"sync_users_as_contacts": False}))
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=store.add("contact", {"display_name": "Ada"}))

        asyncio.run(engine_setup.process_queue())

        assert queue.get_job(job_id).status == JobStatus.COMPLETED
        assert transport.calls == []

    def test_interrupted_job_is_recovered(self, engine_setup, queue, store):
        local_id = store.add("contact", {"display_name": "Ada"})
        job_id = queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=local_id)
        module = engine_setup.registry.get("crm")
        real_push = module.push

        async def cancelled_push(*args, **kwargs):
            raise asyncio.CancelledError()

        module.push = cancelled_push
        with pytest.raises(asyncio.CancelledError):
            asyncio.run(engine_setup.process_queue())
        assert queue.get_job(job_id).status == JobStatus.PROCESSING

        module.push = real_push
        # Still within the stale timeout
        assert asyncio.run(engine_setup.process_queue()) == 0

        conn = sqlite3.connect(queue.db_path)
        try:
            conn.execute(
                "UPDATE sync_queue SET claimed_at = ? WHERE id = ?",
                ((datetime.utcnow() - timedelta(hours=1)).isoformat(timespec="microseconds"), job_id),
            )
            conn.commit()
        finally:
            conn.close()

        assert asyncio.run(engine_setup.process_queue()) == 1
        assert queue.get_job(job_id).status == JobStatus.COMPLETED


class TestCircuitBreaker:
    """Consecutive transient failures pause queue processing."""

    def test_opens_at_threshold(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_seconds=300, clock=lambda: 1000.0)

        breaker.record_failure()
        breaker.record_failure()
        assert breaker.is_available()

        breaker.record_failure()
        assert breaker.is_open
        assert not breaker.is_available()

    def test_success_resets_count(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_seconds=300, clock=lambda: 0.0)

        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert not breaker.is_open
        assert breaker.consecutive_failures == 1

    def test_half_open_after_recovery_delay(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=1, recovery_seconds=300, clock=lambda: now[0])
        breaker.record_failure()

        now[0] = 299.0
        assert not breaker.is_available()
        now[0] = 300.0
        assert breaker.is_available()

        # Failed probe restarts the delay
        breaker.record_failure()
        assert not breaker.is_available()
        now[0] = 600.0
        assert breaker.is_available()
        breaker.record_success()
        assert not breaker.is_open

    def test_engine_pauses_while_open(self, engine_setup, queue, store, transport):
        now = [0.0]
        engine_setup.breaker = CircuitBreaker(failure_threshold=2, recovery_seconds=300, clock=lambda: now[0])
        job_ids = [
            queue.enqueue("crm", "local_to_remote", "contact", "create",
                          local_id=store.add("contact", {"display_name": f"Contact {i}"}))
            for i in range(3)
        ]
        for _ in range(2):
            transport.fail_next("create", RemoteCallError("Bad Gateway", status_code=502))

        assert asyncio.run(engine_setup.process_queue()) == 2
        assert engine_setup.breaker.is_open
        # The third job was never claimed and kept its attempts
        third = queue.get_job(job_ids[2])
        assert third.status == JobStatus.PENDING
        assert third.attempts == 0

        calls_before = len(transport.calls)
        assert asyncio.run(engine_setup.process_queue()) == 0
        assert len(transport.calls) == calls_before

        now[0] = 300.0
        assert asyncio.run(engine_setup.process_queue()) == 1
        assert queue.get_job(job_ids[2]).status == JobStatus.COMPLETED
        assert not engine_setup.breaker.is_open

    def test_permanent_failures_do_not_open(self, engine_setup, queue, store, transport):
        engine_setup.breaker = CircuitBreaker(failure_threshold=2, recovery_seconds=300)
        for i in range(3):
            queue.enqueue("crm", "local_to_remote", "contact", "create",
                          local_id=store.add("contact", {"display_name": f"Contact {i}"}))
            transport.fail_next("create", RemoteCallError("Invalid field 'name'", status_code=200))

        assert asyncio.run(engine_setup.process_queue()) == 3
        assert not engine_setup.breaker.is_open

    def test_local_errors_do_not_open(self, engine_setup, queue, store):
        engine_setup.breaker = CircuitBreaker(failure_threshold=1, recovery_seconds=300)

        def broken_load(entity_type, local_id):
            raise OSError("disk unavailable")

        store.load = broken_load
        queue.enqueue("crm", "local_to_remote", "contact", "create", local_id=1)

        assert asyncio.run(engine_setup.process_queue()) == 1
        assert not engine_setup.breaker.is_open
