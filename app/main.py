"""
FastAPI app wiring for SecondBrain.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

import secondbrain.config as config
from secondbrain.container import Services, build_services
from secondbrain.db import init_db
from secondbrain.mcp import build_mcp, build_mcp_app
from secondbrain.mcp.server import MCPRouteNormalizerASGI
from secondbrain.services.embedding_backfill import embedding_backfill_loop, run_backfill
from app.errors import register_exception_handlers
from app.middleware import configure_middleware
from app.routes.entries import router as entries_router
from app.routes.health import router as health_router
from app.routes.inbox import router as inbox_router
from app.routes.relations import router as relations_router
from app.routes.root import router as root_router
from app.routes.search import router as search_router
from app.routes.settings import router as settings_router


async def _cancel(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the app; pass services to skip database bootstrap (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_services = services is None
        app.state.services = build_services(init_db()) if owns_services else services
        active = app.state.services

        backfill_task = None
        if owns_services and config.EMBEDDING_BACKFILL_ENABLED:
            await asyncio.to_thread(run_backfill, active.database, active.embedder)
            if config.EMBEDDING_BACKFILL_INTERVAL_SECONDS > 0:
                backfill_task = asyncio.create_task(
                    embedding_backfill_loop(active.database, active.embedder)
                )
        try:
            async with mcp_app.lifespan(mcp_app):
                yield
        finally:
            await _cancel(backfill_task)
            if owns_services:
                active.close()

    app = FastAPI(title="SecondBrain", redirect_slashes=False, lifespan=lifespan)
    configure_middleware(app)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(root_router)
    app.include_router(entries_router)
    app.include_router(search_router)
    app.include_router(relations_router)
    app.include_router(inbox_router)
    app.include_router(settings_router)

    mcp_app = build_mcp_app(build_mcp(lambda: app.state.services))
    app.mount("/mcp", mcp_app)
    return app


app = create_app()

# =============================================================================
# ASGI Application (module-level for production deployment)
# =============================================================================

asgi_app = MCPRouteNormalizerASGI(app)


def run() -> None:
    import uvicorn

    config.logger.info("SecondBrain starting", extra={"port": config.PORT})
    uvicorn.run(asgi_app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
