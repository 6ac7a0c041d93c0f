"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import secondbrain.config as config
from app.routes.health import SERVICE_NAME, SERVICE_VERSION


router = APIRouter()


@router.get("/")
def root():
    """Root endpoint with service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": "Personal knowledge store with hybrid search",
        "embedding_model": config.EMBEDDING_MODEL,
        "endpoints": {
            "health": "/health",
            "health_deps": "/health/deps",
            "entries": "/entries",
            "search": "/search",
            "suggestions": "/suggestions",
            "relations": "/relations",
            "inbox": "/inbox",
            "config": "/config/{key}",
            "activity": "/activity",
            "mcp": "/mcp/",
        },
    }
