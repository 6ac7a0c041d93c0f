"""
Entry lifecycle endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

import secondbrain.config as config
from secondbrain.container import Services
from secondbrain.services.entry_repository import serialize_entry
from app.deps import get_services


router = APIRouter(prefix="/entries", tags=["entries"])


class EntryCreate(BaseModel):
    category: str
    title: str
    status: Optional[str] = None
    priority: Optional[str] = None
    content: Optional[dict[str, Any]] = None
    due_date: Optional[str] = None
    legacy_id: Optional[str] = None


class EntryUpdate(BaseModel):
    title: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = None
    content: Optional[dict[str, Any]] = None
    expected_updated_at: Optional[str] = None


class Recategorize(BaseModel):
    category: str
    title: Optional[str] = None


def _entry_not_found(ref: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"status": "not_found", "ref": ref})


@router.post("", status_code=201)
def create_entry(body: EntryCreate, services: Services = Depends(get_services)):
    entry = services.entries.create(
        body.category,
        body.title,
        status=body.status,
        priority=body.priority,
        content=body.content,
        due_date=body.due_date,
        legacy_id=body.legacy_id,
    )
    return serialize_entry(entry)


@router.get("")
def list_entries(
    category: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = config.DEFAULT_LIST_LIMIT,
    offset: int = 0,
    order_by: str = "created_at",
    order_dir: str = "desc",
    services: Services = Depends(get_services),
):
    entries = services.entries.list(
        category=category,
        status=status,
        priority=priority,
        search=search,
        limit=limit,
        offset=offset,
        order_by=order_by,
        order_dir=order_dir,
    )
    total = services.entries.count(
        category=category,
        status=status,
        priority=priority,
        search=search,
    )
    return {
        "count": len(entries),
        "total": total,
        "entries": [serialize_entry(entry) for entry in entries],
    }


@router.get("/{ref}")
def get_entry(ref: str, services: Services = Depends(get_services)):
    """Look up by id, falling back to the legacy id."""
    entry = services.entries.resolve(ref)
    if entry is None:
        raise _entry_not_found(ref)
    return serialize_entry(entry)


@router.patch("/{entry_id}")
def update_entry(entry_id: str, body: EntryUpdate, services: Services = Depends(get_services)):
    fields = body.model_dump(exclude_unset=True)
    expected_updated_at = fields.pop("expected_updated_at", None)
    entry = services.entries.update(entry_id, fields, expected_updated_at=expected_updated_at)
    if entry is None:
        raise _entry_not_found(entry_id)
    return serialize_entry(entry)


@router.post("/{entry_id}/archive")
def archive_entry(entry_id: str, services: Services = Depends(get_services)):
    entry = services.entries.archive(entry_id)
    if entry is None:
        raise _entry_not_found(entry_id)
    return serialize_entry(entry)


@router.post("/{entry_id}/recategorize")
def recategorize_entry(entry_id: str, body: Recategorize, services: Services = Depends(get_services)):
    entry = services.entries.recategorize(entry_id, body.category, title=body.title)
    if entry is None:
        raise _entry_not_found(entry_id)
    return serialize_entry(entry)


@router.get("/{entry_id}/links")
def entry_links(entry_id: str, services: Services = Depends(get_services)):
    if services.entries.get(entry_id) is None:
        raise _entry_not_found(entry_id)
    linked = services.relations.get_linked(entry_id)
    return {"count": len(linked), "links": [item.to_dict() for item in linked]}


@router.get("/{entry_id}/suggestions")
def entry_suggestions(
    entry_id: str,
    limit: int = config.SUGGEST_DEFAULT_LIMIT,
    threshold: float = config.SUGGEST_DEFAULT_THRESHOLD,
    services: Services = Depends(get_services),
):
    if services.entries.get(entry_id) is None:
        raise _entry_not_found(entry_id)
    hits = services.relations.suggest_related(entry_id, limit=limit, threshold=threshold)
    return {"count": len(hits), "suggestions": [hit.to_dict() for hit in hits]}
