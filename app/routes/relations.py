"""
Explicit relation endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from secondbrain.container import Services
from secondbrain.services.relations import serialize_relation
from app.deps import get_services


router = APIRouter(prefix="/relations", tags=["relations"])


class RelationCreate(BaseModel):
    source_id: str
    target_id: str
    relation_type: str = "related_to"


@router.post("", status_code=201)
def create_relation(body: RelationCreate, services: Services = Depends(get_services)):
    relation = services.relations.add_relation(body.source_id, body.target_id, body.relation_type)
    if relation is None:
        raise HTTPException(status_code=404, detail={"status": "not_found", "error": "entry_not_found"})
    return serialize_relation(relation)


@router.delete("/{relation_id}", status_code=204)
def delete_relation(relation_id: str, services: Services = Depends(get_services)):
    if not services.relations.remove_relation(relation_id):
        raise HTTPException(status_code=404, detail={"status": "not_found", "ref": relation_id})
    return Response(status_code=204)
