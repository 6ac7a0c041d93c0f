"""
Activity log helpers (best-effort, metadata-only).

Writing an activity event must never break the request that triggered it,
so events are committed in their own session and failures are only logged.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

import secondbrain.config as config
from secondbrain.db import Database
from secondbrain.models import ActivityEvent, coerce_uuid, utcnow
from secondbrain.validators import validate_limit

logger = config.logger

ACTIONS = {
    "created",
    "status_changed",
    "archived",
    "recategorized",
    "note_added",
    "searched",
}


def _serialize_event(row: ActivityEvent) -> dict:
    return {
        "id": str(row.id),
        "entry_id": str(row.entry_id) if row.entry_id else None,
        "action": row.action,
        "metadata": row.metadata_ or {},
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


class ActivityLog:
    def __init__(self, database: Database, *, enabled: bool = config.ACTIVITY_LOG_ENABLED):
        self.database = database
        self.enabled = enabled

    def log(
        self,
        action: str,
        *,
        entry_id: Any = None,
        metadata: Optional[dict] = None,
    ) -> Optional[ActivityEvent]:
        if not self.enabled:
            return None
        if action not in ACTIONS:
            logger.warning("Unknown activity action", extra={"action": action})
            return None
        event = ActivityEvent(
            entry_id=coerce_uuid(entry_id) if entry_id is not None else None,
            action=action,
            metadata_=metadata or {},
            created_at=utcnow(),
        )
        try:
            with self.database.session() as db:
                db.add(event)
                db.commit()
        except SQLAlchemyError as exc:
            logger.warning(
                "Activity log write failed",
                extra={"action": action, "error": exc.__class__.__name__},
            )
            return None
        return event

    def recent(
        self,
        *,
        entry_id: Any = None,
        action: Optional[str] = None,
        days: int = config.ACTIVITY_DEFAULT_WINDOW_DAYS,
        limit: int = config.DEFAULT_LIST_LIMIT,
    ) -> list[dict]:
        validate_limit(limit, "limit", config.MAX_RESULT_LIMIT)
        validate_limit(days, "days", 3650)
        since = utcnow() - timedelta(days=days)
        with self.database.session() as db:
            query = db.query(ActivityEvent).filter(ActivityEvent.created_at >= since)
            if entry_id is not None:
                key = coerce_uuid(entry_id)
                if key is None:
                    return []
                query = query.filter(ActivityEvent.entry_id == key)
            if action:
                query = query.filter(ActivityEvent.action == action)
            rows = (
                query.order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
                .limit(limit)
                .all()
            )
            return [_serialize_event(row) for row in rows]

    def summary(self, *, days: int = config.ACTIVITY_DEFAULT_WINDOW_DAYS) -> dict:
        """Counts per action over the trailing window."""
        validate_limit(days, "days", 3650)
        since = utcnow() - timedelta(days=days)
        with self.database.session() as db:
            rows = (
                db.query(ActivityEvent.action, func.count(ActivityEvent.id))
                .filter(ActivityEvent.created_at >= since)
                .group_by(ActivityEvent.action)
                .all()
            )
        counts = {action: int(total) for action, total in rows}
        return {
            "status": "ok",
            "days": days,
            "total": sum(counts.values()),
            "by_action": counts,
        }
