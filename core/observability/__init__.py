"""
Observability Module for the Sync Engine

Provides:
- Structured logging with correlation IDs
- Metrics collection (remote calls, session refreshes, sync jobs, timings)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_rpc_call,
    record_session_refresh,
    record_session_retry,
    record_job_outcome,
    record_processing_time,
)

from core.observability.logging import (
    configure_logging,
    get_logger,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_rpc_call",
    "record_session_refresh",
    "record_session_retry",
    "record_job_outcome",
    "record_processing_time",
    # Logging
    "configure_logging",
    "get_logger",
    "CorrelationContext",
    "with_correlation",
]
