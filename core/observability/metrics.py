"""
Metrics Collection for the Sync Engine

Collects and exposes metrics for:
- Remote calls (by operation, failures)
- Session refreshes and session retries
- Sync jobs (processed, succeeded, failed per module)
- Processing times (average, p95)

Metrics are kept in-memory per process.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class RpcMetrics:
    """Metrics for remote calls."""
    calls: int = 0
    failures: int = 0
    session_refreshes: int = 0
    session_retries: int = 0

    by_operation: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"calls": 0, "failures": 0}))


@dataclass
class JobMetrics:
    """Metrics for sync job execution."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    by_module: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"succeeded": 0, "failed": 0}))


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector for the sync engine.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_rpc_call("create", failed=False)
        metrics.record_job_outcome("crm", succeeded=True, duration_ms=120)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.rpc = RpcMetrics()
        self.jobs = JobMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def record_rpc_call(self, operation: str, failed: bool = False):
        with self._lock:
            self.rpc.calls += 1
            self.rpc.by_operation[operation]["calls"] += 1
            if failed:
                self.rpc.failures += 1
                self.rpc.by_operation[operation]["failures"] += 1

    def record_session_refresh(self):
        with self._lock:
            self.rpc.session_refreshes += 1

    def record_session_retry(self):
        with self._lock:
            self.rpc.session_retries += 1

    def record_job_outcome(self, module_id: str, succeeded: bool, duration_ms: float = None):
        with self._lock:
            self.jobs.processed += 1
            if succeeded:
                self.jobs.succeeded += 1
                self.jobs.by_module[module_id]["succeeded"] += 1
            else:
                self.jobs.failed += 1
                self.jobs.by_module[module_id]["failed"] += 1
            if duration_ms is not None:
                self.timings.add_sample(duration_ms, f"job:{module_id}")

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
            }

    def get_summary(self) -> Dict[str, Any]:
        """Snapshot of all metrics as plain dicts."""
        with self._lock:
            return {
                "rpc": {
                    "calls": self.rpc.calls,
                    "failures": self.rpc.failures,
                    "session_refreshes": self.rpc.session_refreshes,
                    "session_retries": self.rpc.session_retries,
                    "by_operation": {k: dict(v) for k, v in self.rpc.by_operation.items()},
                },
                "jobs": {
                    "processed": self.jobs.processed,
                    "succeeded": self.jobs.succeeded,
                    "failed": self.jobs.failed,
                    "by_module": {k: dict(v) for k, v in self.jobs.by_module.items()},
                },
                "timings": {
                    "average_ms": self.timings.get_average(),
                    "p95_ms": self.timings.get_p95(),
                },
            }


# =============================================================================
# Convenience Functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_rpc_call(operation: str, failed: bool = False):
    get_metrics().record_rpc_call(operation, failed)


def record_session_refresh():
    get_metrics().record_session_refresh()


def record_session_retry():
    get_metrics().record_session_retry()


def record_job_outcome(module_id: str, succeeded: bool, duration_ms: float = None):
    get_metrics().record_job_outcome(module_id, succeeded, duration_ms)


def record_processing_time(stage: str, duration_ms: float):
    get_metrics().record_processing_time(stage, duration_ms)
