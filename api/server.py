"""FastAPI server for the ERP sync engine.

Exposes the Odoo webhook receiver and health endpoints. The sync runtime is
either injected (tests, embedding) or built from the environment at startup.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from api.routes import health, webhooks
from core.config import load_settings
from core.observability.logging import get_logger
from sync_queue.runtime import SyncRuntime, build_runtime


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the runtime on startup unless one was injected; close what we built."""
    owned = app.state.runtime is None
    if owned:
        app.state.runtime = build_runtime(load_settings())
    logger.info(
        f"ERP Sync API starting up ({app.state.runtime.registry.get_booted_count()} active module(s))"
    )

    yield

    logger.info("ERP Sync API shutting down")
    if owned:
        await app.state.runtime.close()
        app.state.runtime = None


def create_app(runtime: Optional[SyncRuntime] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="ERP Sync API",
        description="Webhook receiver and health endpoints for the local/Odoo sync engine",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.runtime = runtime

    app.include_router(health.router, tags=["Health"])
    app.include_router(webhooks.router, tags=["Webhooks"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
