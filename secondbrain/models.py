"""
SecondBrain Database Models
PostgreSQL + pgvector schema (SQLite + JSON fallback)
"""

from datetime import datetime, timezone
import uuid
from sqlalchemy import (
    Column, String, Text, Float, DateTime, ForeignKey, CheckConstraint, Index, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import declarative_base

import secondbrain.config as config

DB_BACKEND_EFFECTIVE = config.DB_BACKEND_EFFECTIVE
VECTOR_BACKEND_EFFECTIVE = config.VECTOR_BACKEND_EFFECTIVE

try:
    from pgvector.sqlalchemy import Vector as PgVector
    PGVECTOR_AVAILABLE = True
except Exception:
    PgVector = None
    PGVECTOR_AVAILABLE = False

if (
    DB_BACKEND_EFFECTIVE == "postgres"
    and VECTOR_BACKEND_EFFECTIVE == "pgvector"
    and PGVECTOR_AVAILABLE
):
    EMBEDDING_COLUMN_TYPE = PgVector(config.EMBEDDING_DIM)
else:
    EMBEDDING_COLUMN_TYPE = JSON(none_as_null=True)

JSON_TYPE = JSONB if DB_BACKEND_EFFECTIVE == "postgres" else JSON
UUID_TYPE = UUID(as_uuid=True) if DB_BACKEND_EFFECTIVE == "postgres" else String(36)


def _uuid_default() -> str | uuid.UUID:
    value = uuid.uuid4()
    return value if DB_BACKEND_EFFECTIVE == "postgres" else str(value)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what both backends hand back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def coerce_uuid(raw) -> str | uuid.UUID | None:
    """Normalize an id for the active backend; None when it is not a UUID."""
    if isinstance(raw, uuid.UUID):
        value = raw
    else:
        try:
            value = uuid.UUID(str(raw).strip())
        except (TypeError, ValueError, AttributeError):
            return None
    return value if DB_BACKEND_EFFECTIVE == "postgres" else str(value)


Base = declarative_base()


# =============================================================================
# Entries
# =============================================================================

class Entry(Base):
    __tablename__ = "entries"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    legacy_id = Column(String(255), unique=True)  # prior external system id
    category = Column(String(50), nullable=False)
    title = Column(Text, nullable=False)
    status = Column(String(50))
    priority = Column(String(50))
    content = Column(JSON_TYPE, default=dict, nullable=False)
    embedding = Column(EMBEDDING_COLUMN_TYPE, nullable=True)
    due_date = Column(DateTime(timezone=True))
    archived_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("title != ''", name="ck_entries_title_not_empty"),
        Index("ix_entries_category", "category"),
        Index("ix_entries_status", "status"),
        Index("ix_entries_due_date", "due_date"),
        Index("ix_entries_created_at", "created_at"),
        Index("ix_entries_archived_at", "archived_at"),
    )

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


# =============================================================================
# Entry Relations (explicit links only; suggestions are computed)
# =============================================================================

class EntryRelation(Base):
    __tablename__ = "entry_relations"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    source_id = Column(UUID_TYPE, ForeignKey("entries.id", ondelete="CASCADE"), nullable=False)
    target_id = Column(UUID_TYPE, ForeignKey("entries.id", ondelete="CASCADE"), nullable=False)
    relation_type = Column(String(50), nullable=False)  # related_to/part_of/inspired_by/superseded_by
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("source_id != target_id", name="ck_entry_relations_distinct"),
        Index("ix_entry_relations_source", "source_id"),
        Index("ix_entry_relations_target", "target_id"),
    )


# =============================================================================
# Inbox Log (capture audit trail)
# =============================================================================

class InboxLogEntry(Base):
    __tablename__ = "inbox_log"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    legacy_id = Column(String(255), unique=True)
    raw_input = Column(Text, nullable=False)
    category = Column(String(50))
    confidence = Column(Float)
    destination_id = Column(String(255))
    status = Column(String(50))  # Processed / Needs Review / Fixed / Ignored
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="check_inbox_confidence",
        ),
        Index("ix_inbox_log_status", "status"),
        Index("ix_inbox_log_created_at", "created_at"),
    )


# =============================================================================
# Config (key -> JSON value)
# =============================================================================

class ConfigEntry(Base):
    __tablename__ = "config"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    key = Column(String(255), nullable=False, unique=True)
    value = Column(JSON_TYPE, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


# =============================================================================
# Activity Log
# =============================================================================

class ActivityEvent(Base):
    __tablename__ = "activity_log"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    entry_id = Column(UUID_TYPE, ForeignKey("entries.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(50), nullable=False)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_activity_log_entry_id", "entry_id"),
        Index("ix_activity_log_action", "action"),
        Index("ix_activity_log_created_at", "created_at"),
    )


__all__ = [
    "Base",
    "Entry",
    "EntryRelation",
    "InboxLogEntry",
    "ConfigEntry",
    "ActivityEvent",
    "EMBEDDING_COLUMN_TYPE",
    "PGVECTOR_AVAILABLE",
    "coerce_uuid",
    "utcnow",
]
