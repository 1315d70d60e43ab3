"""
Observability Validation Test

This test validates the observability stack:
1. Metrics collection works (rpc/session/job/timing metrics)
2. Structured logging with correlation IDs works
3. A session refresh in the client shows up in the metrics
"""

import asyncio
import json
import logging

import pytest


def test_observability_imports():
    """Verify all observability modules import correctly."""
    from core.observability import (
        MetricsCollector, get_metrics,
        record_rpc_call, record_session_refresh, record_session_retry,
        record_job_outcome, record_processing_time,
        get_logger, CorrelationContext, with_correlation, configure_logging,
    )
    assert MetricsCollector is not None
    assert get_metrics is not None
    assert CorrelationContext is not None


class TestMetricsCollector:
    """Test the metrics collection system."""

    def test_singleton_instance(self):
        """MetricsCollector returns same instance."""
        from core.observability.metrics import MetricsCollector
        m1 = MetricsCollector.instance()
        m2 = MetricsCollector.instance()
        assert m1 is m2

    def test_rpc_metrics_tracking(self):
        """Track remote calls and failures per operation."""
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector.instance()

        baseline = mc.get_summary()["rpc"]
        create_before = baseline["by_operation"].get("create", {"calls": 0, "failures": 0})

        mc.record_rpc_call("create")
        mc.record_rpc_call("create", failed=True)

        summary = mc.get_summary()["rpc"]
        assert summary["calls"] == baseline["calls"] + 2
        assert summary["failures"] == baseline["failures"] + 1
        assert summary["by_operation"]["create"]["calls"] == create_before["calls"] + 2
        assert summary["by_operation"]["create"]["failures"] == create_before["failures"] + 1

    def test_job_outcomes_per_module(self):
        """Track job outcomes by module."""
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector.instance()

        baseline = mc.get_summary()["jobs"]

        mc.record_job_outcome("test-module", succeeded=True, duration_ms=10)
        mc.record_job_outcome("test-module", succeeded=False)

        summary = mc.get_summary()["jobs"]
        assert summary["processed"] == baseline["processed"] + 2
        assert summary["succeeded"] == baseline["succeeded"] + 1
        assert summary["failed"] == baseline["failed"] + 1
        assert summary["by_module"]["test-module"]["failed"] >= 1

    def test_timing_percentile_calculation(self):
        """Verify p95 calculation is correct."""
        from core.observability.metrics import TimingMetrics
        tm = TimingMetrics()

        for i in range(1, 101):
            tm.add_sample(float(i), stage="test")

        assert tm.get_average("test") == 50.5
        assert tm.get_p95("test") == 96.0
        assert tm.get_p95("unknown") == 0.0

    def test_timing_samples_bounded(self):
        from core.observability.metrics import TimingMetrics
        tm = TimingMetrics(max_samples=5)
        for i in range(10):
            tm.add_sample(float(i))
        assert tm.samples == [5.0, 6.0, 7.0, 8.0, 9.0]


class TestCorrelatedLogging:
    """Test structured logging with correlation IDs."""

    def test_correlation_context_creation(self):
        """Create and merge correlation context."""
        from core.observability.logging import CorrelationContext

        ctx = CorrelationContext(module_id="crm", job_id=7)
        assert ctx.to_dict() == {"module_id": "crm", "job_id": 7}

        merged = ctx.merge(entity_type="contact", job_id=None)
        assert merged.to_dict() == {"module_id": "crm", "job_id": 7, "entity_type": "contact"}

    def test_context_var_isolation(self):
        """with_correlation restores the previous context."""
        from core.observability.logging import get_correlation_context, with_correlation

        with with_correlation(module_id="crm"):
            with with_correlation(job_id=3):
                assert get_correlation_context().to_dict() == {"module_id": "crm", "job_id": 3}
            assert get_correlation_context().to_dict() == {"module_id": "crm"}
        assert get_correlation_context().to_dict() == {}

    def test_context_isolated_between_tasks(self):
        from core.observability.logging import get_correlation_context, with_correlation

        async def job(job_id):
            with with_correlation(job_id=job_id):
                await asyncio.sleep(0)
                return get_correlation_context().job_id

        async def scenario():
            return await asyncio.gather(job(1), job(2))

        assert asyncio.run(scenario()) == [1, 2]

    def test_structured_formatter_json_output(self):
        """JSON formatter includes correlation and extra fields."""
        from core.observability.logging import StructuredFormatter, with_correlation

        record = logging.LogRecord("core.sync.module", logging.INFO, "", 0, "Created remote record", (), None)
        record.extra_fields = {"remote_id": 42}

        with with_correlation(module_id="crm", entity_type="contact"):
            data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "Created remote record"
        assert data["level"] == "INFO"
        assert data["module_id"] == "crm"
        assert data["entity_type"] == "contact"
        assert data["remote_id"] == 42

    def test_human_formatter(self):
        from core.observability.logging import HumanReadableFormatter, with_correlation

        record = logging.LogRecord("sync_queue.engine", logging.WARNING, "", 0, "Sync job failed", (), None)
        record.extra_fields = {"attempt": 2}

        with with_correlation(module_id="crm", job_id=9):
            line = HumanReadableFormatter().format(record)

        assert "[crm/job:9]" in line
        assert line.endswith("Sync job failed attempt=2")

    def test_logger_passes_extra_fields(self, caplog):
        from core.observability.logging import get_logger

        logger = get_logger("test.observability")
        with caplog.at_level(logging.INFO, logger="test.observability"):
            logger.info("hello", extra_fields={"model": "res.partner"})

        record = caplog.records[-1]
        assert record.getMessage() == "hello"
        assert record.extra_fields == {"model": "res.partner"}
        assert get_logger("test.observability") is logger


class TestClientMetrics:
    """The RPC client feeds the collector."""

    def test_session_refresh_is_counted(self, client, transport):
        from core.observability.metrics import get_metrics

        before = get_metrics().get_summary()["rpc"]

        async def scenario():
            await client.search("res.partner", [])
            transport.expire_sessions()
            await client.search("res.partner", [])

        asyncio.run(scenario())

        after = get_metrics().get_summary()["rpc"]
        assert after["session_refreshes"] == before["session_refreshes"] + 1
        assert after["session_retries"] == before["session_retries"] + 1
        assert after["calls"] == before["calls"] + 2
