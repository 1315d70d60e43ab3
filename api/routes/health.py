"""Health check endpoints."""

from datetime import datetime
from typing import Dict, List

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from core.observability.metrics import get_metrics
from sync_queue.models import QueueStats


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    queue: QueueStats
    active_modules: List[str]
    warnings: Dict[str, List[str]]
    circuit_open: bool = False


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Queue stats and active modules."""
    runtime = request.app.state.runtime
    stats = runtime.queue.get_stats()
    circuit_open = runtime.engine.breaker.is_open
    return HealthResponse(
        # Failed jobs need an operator, the service itself is still up
        status="degraded" if stats.failed or circuit_open else "healthy",
        circuit_open=circuit_open,
        timestamp=datetime.utcnow().isoformat(),
        version=request.app.version,
        queue=stats,
        active_modules=[module.id for module in runtime.registry.booted()],
        warnings={
            module_id: [item["message"] for item in items]
            for module_id, items in runtime.registry.get_warnings().items()
        },
    )


@router.get("/metrics")
async def metrics_summary() -> Dict:
    """In-process RPC, job and timing metrics."""
    return get_metrics().get_summary()


@router.get("/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """Readiness probe: at least one module is active."""
    if request.app.state.runtime.registry.get_booted_count() == 0:
        response.status_code = 503
        return {"status": "no active modules"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check(response: Response) -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
