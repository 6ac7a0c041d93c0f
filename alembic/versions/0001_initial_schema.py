"""Initial schema: entries, relations, inbox log, config, activity log.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

import secondbrain.config as config


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _embedding_type(is_postgres: bool):
    if is_postgres and config.VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from pgvector.sqlalchemy import Vector

        return Vector(config.EMBEDDING_DIM), True
    return sa.JSON(none_as_null=True), False


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"

    if is_postgres:
        uuid_type = postgresql.UUID(as_uuid=True)
        json_type = postgresql.JSONB()
    else:
        uuid_type = sa.String(36)
        json_type = sa.JSON()
    embedding_type, use_pgvector = _embedding_type(is_postgres)

    # =============================================================================
    # Entries
    # =============================================================================
    op.create_table(
        "entries",
        sa.Column("id", uuid_type, nullable=False),
        sa.Column("legacy_id", sa.String(255), nullable=True),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("priority", sa.String(50), nullable=True),
        sa.Column("content", json_type, nullable=False),
        sa.Column("embedding", embedding_type, nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("legacy_id", name="uq_entries_legacy_id"),
        sa.CheckConstraint("title != ''", name="ck_entries_title_not_empty"),
    )
    op.create_index("ix_entries_category", "entries", ["category"])
    op.create_index("ix_entries_status", "entries", ["status"])
    op.create_index("ix_entries_due_date", "entries", ["due_date"])
    op.create_index("ix_entries_created_at", "entries", ["created_at"])
    op.create_index("ix_entries_archived_at", "entries", ["archived_at"])

    if is_postgres:
        op.execute(
            """
            CREATE INDEX IF NOT EXISTS ix_entries_active_category_status
            ON entries (category, status)
            WHERE archived_at IS NULL
            """
        )
    if use_pgvector:
        op.execute(
            """
            CREATE INDEX IF NOT EXISTS ix_entries_embedding_hnsw
            ON entries USING hnsw (embedding vector_cosine_ops)
            WITH (m = 16, ef_construction = 64)
            """
        )

    # =============================================================================
    # Entry Relations
    # =============================================================================
    op.create_table(
        "entry_relations",
        sa.Column("id", uuid_type, nullable=False),
        sa.Column("source_id", uuid_type, nullable=False),
        sa.Column("target_id", uuid_type, nullable=False),
        sa.Column("relation_type", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["source_id"], ["entries.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_id"], ["entries.id"], ondelete="CASCADE"),
        sa.CheckConstraint("source_id != target_id", name="ck_entry_relations_distinct"),
    )
    op.create_index("ix_entry_relations_source", "entry_relations", ["source_id"])
    op.create_index("ix_entry_relations_target", "entry_relations", ["target_id"])

    # =============================================================================
    # Inbox Log
    # =============================================================================
    op.create_table(
        "inbox_log",
        sa.Column("id", uuid_type, nullable=False),
        sa.Column("legacy_id", sa.String(255), nullable=True),
        sa.Column("raw_input", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("destination_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("legacy_id", name="uq_inbox_log_legacy_id"),
        sa.CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="check_inbox_confidence",
        ),
    )
    op.create_index("ix_inbox_log_status", "inbox_log", ["status"])
    op.create_index("ix_inbox_log_created_at", "inbox_log", ["created_at"])

    # =============================================================================
    # Config
    # =============================================================================
    op.create_table(
        "config",
        sa.Column("id", uuid_type, nullable=False),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("value", json_type, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key", name="uq_config_key"),
    )

    # =============================================================================
    # Activity Log
    # =============================================================================
    op.create_table(
        "activity_log",
        sa.Column("id", uuid_type, nullable=False),
        sa.Column("entry_id", uuid_type, nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["entry_id"], ["entries.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_activity_log_entry_id", "activity_log", ["entry_id"])
    op.create_index("ix_activity_log_action", "activity_log", ["action"])
    op.create_index("ix_activity_log_created_at", "activity_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_log")
    op.drop_table("config")
    op.drop_table("inbox_log")
    op.drop_table("entry_relations")
    op.drop_table("entries")
