"""
Inbox log: append-only record of capture and classification events.
"""

from __future__ import annotations

from typing import Optional, List

import secondbrain.config as config
from secondbrain.categories import INBOX_DEFAULT_STATUS, INBOX_LOG_STATUS, parse_category
from secondbrain.db import Database
from secondbrain.models import InboxLogEntry, coerce_uuid, utcnow
from secondbrain.validators import (
    validate_choice,
    validate_limit,
    validate_optional_text,
    validate_required_text,
    validate_unit_interval,
)

logger = config.logger


def serialize_inbox_entry(row: InboxLogEntry) -> dict:
    return {
        "id": str(row.id),
        "raw_input": row.raw_input,
        "category": row.category,
        "confidence": row.confidence,
        "destination_id": row.destination_id,
        "status": row.status,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


class InboxLog:
    def __init__(self, database: Database):
        self.database = database

    def append(
        self,
        raw_input: str,
        *,
        category: Optional[str] = None,
        confidence: Optional[float] = None,
        destination_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> InboxLogEntry:
        validate_required_text(raw_input, "raw_input", config.MAX_TEXT_LENGTH)
        category_value = parse_category(category).value if category is not None else None
        if confidence is not None:
            validate_unit_interval(confidence, "confidence")
        validate_optional_text(destination_id, "destination_id", config.MAX_SHORT_TEXT_LENGTH)
        validate_choice(status, "status", INBOX_LOG_STATUS)

        row = InboxLogEntry(
            raw_input=raw_input,
            category=category_value,
            confidence=float(confidence) if confidence is not None else None,
            destination_id=destination_id,
            status=status or INBOX_DEFAULT_STATUS,
            created_at=utcnow(),
        )
        with self.database.session() as db:
            db.add(row)
            db.commit()
        logger.info("Inbox entry logged", extra={"inbox_id": str(row.id), "status": row.status})
        return row

    def list(
        self,
        *,
        status: Optional[str] = None,
        limit: int = config.DEFAULT_LIST_LIMIT,
    ) -> List[InboxLogEntry]:
        """Newest first."""
        validate_choice(status, "status", INBOX_LOG_STATUS)
        validate_limit(limit, "limit", config.MAX_RESULT_LIMIT)
        with self.database.session() as db:
            query = db.query(InboxLogEntry)
            if status:
                query = query.filter(InboxLogEntry.status == status)
            return (
                query.order_by(InboxLogEntry.created_at.desc(), InboxLogEntry.id.desc())
                .limit(limit)
                .all()
            )

    def set_status(self, inbox_id, status: str) -> Optional[InboxLogEntry]:
        validate_required_text(status, "status", config.MAX_STATUS_LENGTH)
        validate_choice(status, "status", INBOX_LOG_STATUS)
        key = coerce_uuid(inbox_id)
        if key is None:
            return None
        with self.database.session() as db:
            row = db.get(InboxLogEntry, key)
            if row is None:
                return None
            row.status = status
            db.commit()
        return row
