"""
Inbox log endpoints.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

import secondbrain.config as config
from secondbrain.container import Services
from secondbrain.services.inbox_log import serialize_inbox_entry
from app.deps import get_services


router = APIRouter(prefix="/inbox", tags=["inbox"])


class InboxAppend(BaseModel):
    raw_input: str
    category: Optional[str] = None
    confidence: Optional[float] = None
    destination_id: Optional[str] = None
    status: Optional[str] = None


class InboxStatus(BaseModel):
    status: str


@router.post("", status_code=201)
def append_inbox(body: InboxAppend, services: Services = Depends(get_services)):
    row = services.inbox.append(
        body.raw_input,
        category=body.category,
        confidence=body.confidence,
        destination_id=body.destination_id,
        status=body.status,
    )
    return serialize_inbox_entry(row)


@router.get("")
def list_inbox(
    status: Optional[str] = None,
    limit: int = config.DEFAULT_LIST_LIMIT,
    services: Services = Depends(get_services),
):
    rows = services.inbox.list(status=status, limit=limit)
    return {"count": len(rows), "items": [serialize_inbox_entry(row) for row in rows]}


@router.patch("/{inbox_id}")
def set_inbox_status(inbox_id: str, body: InboxStatus, services: Services = Depends(get_services)):
    row = services.inbox.set_status(inbox_id, body.status)
    if row is None:
        raise HTTPException(status_code=404, detail={"status": "not_found", "ref": inbox_id})
    return serialize_inbox_entry(row)
