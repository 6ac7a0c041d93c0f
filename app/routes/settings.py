"""
Config store and activity endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

import secondbrain.config as config
from secondbrain.container import Services
from app.deps import get_services


router = APIRouter(tags=["settings"])

_MISSING = object()


class ConfigValue(BaseModel):
    value: Any = None


@router.get("/config/{key}")
def get_config_value(key: str, services: Services = Depends(get_services)):
    value = services.settings.get(key, _MISSING)
    if value is _MISSING:
        raise HTTPException(status_code=404, detail={"status": "not_found", "ref": key})
    return {"key": key, "value": value}


@router.put("/config/{key}")
def set_config_value(key: str, body: ConfigValue, services: Services = Depends(get_services)):
    services.settings.set(key, body.value)
    return {"key": key, "value": body.value}


@router.delete("/config/{key}", status_code=204)
def delete_config_value(key: str, services: Services = Depends(get_services)):
    if not services.settings.delete(key):
        raise HTTPException(status_code=404, detail={"status": "not_found", "ref": key})


@router.get("/activity")
def recent_activity(
    entry_id: Optional[str] = None,
    action: Optional[str] = None,
    days: int = config.ACTIVITY_DEFAULT_WINDOW_DAYS,
    limit: int = config.DEFAULT_LIST_LIMIT,
    services: Services = Depends(get_services),
):
    events = services.activity.recent(entry_id=entry_id, action=action, days=days, limit=limit)
    return {"count": len(events), "events": events}


@router.get("/activity/summary")
def activity_summary(
    days: int = config.ACTIVITY_DEFAULT_WINDOW_DAYS,
    services: Services = Depends(get_services),
):
    return services.activity.summary(days=days)
