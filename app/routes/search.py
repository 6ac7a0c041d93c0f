"""
Hybrid search endpoint.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

import secondbrain.config as config
from secondbrain.container import Services
from app.deps import get_services


router = APIRouter(tags=["search"])


@router.get("/search")
def search_entries(
    q: str,
    category: Optional[str] = None,
    limit: int = config.DEFAULT_SEARCH_LIMIT,
    services: Services = Depends(get_services),
):
    hits = services.search.search(q, category=category, limit=limit)
    return {"count": len(hits), "results": [hit.to_dict() for hit in hits]}


@router.get("/suggestions")
def suggest_for_text(
    text: str,
    exclude_id: Optional[str] = None,
    limit: int = config.SUGGEST_DEFAULT_LIMIT,
    threshold: float = config.SUGGEST_DEFAULT_THRESHOLD,
    services: Services = Depends(get_services),
):
    """Entries similar to text that has not been stored yet."""
    hits = services.relations.suggest_for_text(
        text,
        exclude_id=exclude_id,
        limit=limit,
        threshold=threshold,
    )
    return {"count": len(hits), "suggestions": [hit.to_dict() for hit in hits]}
