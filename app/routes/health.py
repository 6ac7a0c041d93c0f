"""
Health and dependency endpoints.
"""

from __future__ import annotations

import os
import time

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text

import secondbrain.config as config
from secondbrain.container import Services
from secondbrain.db import get_schema_revisions
from secondbrain.errors import EmbeddingProviderError
from app.deps import get_services


router = APIRouter()

SERVICE_NAME = "SecondBrain"
SERVICE_VERSION = "0.1.0"


def _vector_required(services: Services) -> bool:
    return services.database.is_postgres and config.VECTOR_BACKEND_EFFECTIVE == "pgvector"


def _check_db_health(services: Services) -> dict:
    try:
        with services.database.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            ext_version = None
            pgvector_installed = True
            if _vector_required(services):
                ext_version = conn.execute(
                    text("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
                ).scalar()
                pgvector_installed = bool(ext_version)
        current_rev, head_rev = get_schema_revisions(services.database)
    except Exception as exc:
        return {"ok": False, "error": str(exc)}

    return {
        "ok": True,
        "backend": services.database.engine.dialect.name,
        "pgvector_installed": pgvector_installed,
        "pgvector_version": ext_version,
        "schema_revision": current_rev,
        "schema_expected": head_rev,
        "schema_up_to_date": head_rev is None or current_rev == head_rev,
    }


async def _check_embedding_health(services: Services, check_external: bool) -> dict:
    embedder = services.embedder
    breaker_status = embedder.breaker.status()
    embedding_status = {
        "status": "unknown",
        "provider": embedder.provider,
        "model": embedder.model,
        "circuit_breaker": breaker_status,
        "checked": False,
    }

    if not embedder.enabled:
        embedding_status["status"] = "disabled"
        return embedding_status

    if breaker_status.get("open"):
        embedding_status["status"] = "cooldown"
        return embedding_status

    if check_external and config.EMBEDDING_HEALTHCHECK_ENABLED:
        embedding_status["checked"] = True
        start = time.time()
        try:
            await embedder.aembed("healthcheck")
            embedding_status["status"] = "ok"
            embedding_status["latency_ms"] = int((time.time() - start) * 1000)
        except EmbeddingProviderError as exc:
            embedding_status["status"] = "error"
            embedding_status["error"] = str(exc)
        return embedding_status

    embedding_status["status"] = "skipped" if check_external else "ready"
    return embedding_status


def _require_database(services: Services, db_health: dict, extra: dict) -> None:
    if not db_health.get("ok") or (_vector_required(services) and not db_health.get("pgvector_installed")):
        raise HTTPException(status_code=503, detail={"database": db_health, **extra})


@router.get("/health")
async def health(services: Services = Depends(get_services)):
    """Health check endpoint."""
    db_health = _check_db_health(services)
    embedding_status = await _check_embedding_health(services, check_external=False)
    _require_database(services, db_health, {"embedding_provider": embedding_status})

    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "instance_id": os.environ.get("SECONDBRAIN_INSTANCE_ID", "secondbrain-1"),
        "database": db_health,
        "embedding_provider": embedding_status,
    }


@router.get("/health/deps")
async def health_deps(services: Services = Depends(get_services)):
    """Dependency health checks (optional embedding provider probe)."""
    db_health = _check_db_health(services)
    _require_database(services, db_health, {})

    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "database": db_health,
        "embedding_provider": await _check_embedding_health(services, check_external=True),
    }
