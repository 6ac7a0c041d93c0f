"""
Entry repository: create, lookup, filtered listing, update, archive.
"""

from __future__ import annotations

from typing import Any, Optional, List

from sqlalchemy import String, asc, cast, desc, func, or_

import secondbrain.config as config
from secondbrain.categories import (
    DEFAULT_STATUS,
    PRIORITY_OPTIONS,
    Category,
    build_embedding_text,
    is_known_status,
    parse_category,
    parse_content,
    status_options,
)
from secondbrain.db import Database
from secondbrain.errors import StaleEntryError, ValidationIssue
from secondbrain.models import (
    Entry,
    EntryRelation,
    InboxLogEntry,
    coerce_uuid,
    utcnow,
)
from secondbrain.services.activity import ActivityLog
from secondbrain.services.embeddings import EmbeddingClient
from secondbrain.validators import (
    naive_utc,
    parse_due_date,
    validate_choice,
    validate_content_size,
    validate_limit,
    validate_offset,
    validate_optional_text,
    validate_required_text,
)

logger = config.logger

ORDER_COLUMNS = {
    "created_at": Entry.created_at,
    "updated_at": Entry.updated_at,
    "due_date": Entry.due_date,
    "title": Entry.title,
}
ORDER_DIRECTIONS = ("asc", "desc")
UPDATABLE_FIELDS = ("title", "status", "priority", "due_date", "content")


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_entry(entry: Entry) -> dict:
    return {
        "id": str(entry.id),
        "legacy_id": entry.legacy_id,
        "category": entry.category,
        "title": entry.title,
        "status": entry.status,
        "priority": entry.priority,
        "due_date": _isoformat(entry.due_date),
        "content": entry.content or {},
        "has_embedding": entry.embedding is not None,
        "archived_at": _isoformat(entry.archived_at),
        "created_at": _isoformat(entry.created_at),
        "updated_at": _isoformat(entry.updated_at),
    }


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def keyword_clause(term: str):
    """Case-insensitive substring over the title or the serialized content.

    Content is matched as its JSON text, so keys and non-string values match
    too, and values are compared in their JSON-escaped form (a literal quote
    in the term will not match a stored quote).
    """
    pattern = f"%{escape_like(term)}%"
    return or_(
        Entry.title.ilike(pattern, escape="\\"),
        cast(Entry.content, String).ilike(pattern, escape="\\"),
    )


def _coerce_timestamp(value, field: str):
    parsed = parse_due_date(value, field=field)
    if parsed is None:
        raise ValidationIssue(f"{field} must be a timestamp", field=field, error_type="invalid_value")
    return parsed


class EntryRepository:
    def __init__(
        self,
        database: Database,
        embedder: Optional[EmbeddingClient],
        activity: Optional[ActivityLog] = None,
    ):
        self.database = database
        self.embedder = embedder
        self.activity = activity

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _embed_entry(self, title: str, content: Optional[dict]) -> Optional[List[float]]:
        if self.embedder is None:
            return None
        text = build_embedding_text(title, content)
        if not text:
            return None
        vector = self.embedder.try_embed(text)
        if vector is None:
            logger.warning("Embedding unavailable; storing entry without vector")
        return vector

    def _check_status(self, category: Category, status: Optional[str]) -> None:
        # Free-form statuses are stored as given; off-vocabulary ones are flagged.
        if status and not is_known_status(category, status):
            logger.warning(
                "Status outside category vocabulary",
                extra={"category": category.value, "status": status, "known": list(status_options(category))},
            )

    def _log(self, action: str, entry_id: Any = None, metadata: Optional[dict] = None) -> None:
        if self.activity is not None:
            self.activity.log(action, entry_id=entry_id, metadata=metadata)

    @staticmethod
    def _apply_filters(
        query,
        *,
        category: Optional[str],
        status: Optional[str],
        priority: Optional[str],
        search: Optional[str],
    ):
        query = query.filter(Entry.archived_at.is_(None))
        if category:
            query = query.filter(Entry.category == parse_category(category).value)
        if status:
            query = query.filter(func.lower(Entry.status) == status.strip().lower())
        if priority:
            query = query.filter(Entry.priority == priority)
        if search:
            query = query.filter(keyword_clause(search))
        return query

    @staticmethod
    def _validate_filters(
        *,
        status: Optional[str],
        priority: Optional[str],
        search: Optional[str],
    ) -> None:
        validate_optional_text(status, "status", config.MAX_STATUS_LENGTH)
        validate_choice(priority, "priority", PRIORITY_OPTIONS)
        validate_optional_text(search, "search", config.MAX_QUERY_LENGTH)

    # ------------------------------------------------------------------
    # Create / lookup
    # ------------------------------------------------------------------

    def create(
        self,
        category,
        title: str,
        *,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        content: Optional[dict] = None,
        due_date=None,
        legacy_id: Optional[str] = None,
    ) -> Entry:
        resolved = parse_category(category)
        validate_required_text(title, "title", config.MAX_TITLE_LENGTH)
        validate_optional_text(status, "status", config.MAX_STATUS_LENGTH)
        validate_choice(priority, "priority", PRIORITY_OPTIONS)
        validate_optional_text(legacy_id, "legacy_id", config.MAX_SHORT_TEXT_LENGTH)
        payload = parse_content(resolved, content).to_dict()
        validate_content_size(payload)
        due = parse_due_date(due_date)
        self._check_status(resolved, status)

        if legacy_id is not None and self.get_by_legacy_id(legacy_id) is not None:
            raise ValidationIssue(
                "legacy_id already exists",
                field="legacy_id",
                error_type="duplicate",
            )

        title = title.strip()
        embedding = self._embed_entry(title, payload)
        now = utcnow()
        entry = Entry(
            legacy_id=legacy_id,
            category=resolved.value,
            title=title,
            status=status or DEFAULT_STATUS[resolved],
            priority=priority,
            content=payload,
            embedding=embedding,
            due_date=due,
            created_at=now,
            updated_at=now,
        )
        with self.database.session() as db:
            db.add(entry)
            db.commit()

        logger.info(
            "Entry created",
            extra={"entry_id": str(entry.id), "category": entry.category, "embedded": embedding is not None},
        )
        self._log("created", entry.id, {"category": entry.category})
        return entry

    def get(self, entry_id) -> Optional[Entry]:
        """Point lookup by primary id; archived rows are returned too."""
        key = coerce_uuid(entry_id)
        if key is None:
            return None
        with self.database.session() as db:
            return db.get(Entry, key)

    def get_by_legacy_id(self, legacy_id: str) -> Optional[Entry]:
        if not isinstance(legacy_id, str) or not legacy_id.strip():
            return None
        with self.database.session() as db:
            return db.query(Entry).filter(Entry.legacy_id == legacy_id).first()

    def resolve(self, ref) -> Optional[Entry]:
        """Primary id first; legacy id only when that misses."""
        entry = self.get(ref)
        if entry is not None:
            return entry
        if isinstance(ref, str):
            return self.get_by_legacy_id(ref)
        return None

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(
        self,
        *,
        category: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = config.DEFAULT_LIST_LIMIT,
        offset: int = 0,
        order_by: str = "created_at",
        order_dir: str = "desc",
    ) -> List[Entry]:
        self._validate_filters(status=status, priority=priority, search=search)
        validate_limit(limit, "limit", config.MAX_RESULT_LIMIT)
        validate_offset(offset)
        validate_choice(order_by, "order_by", tuple(ORDER_COLUMNS))
        validate_choice(order_dir, "order_dir", ORDER_DIRECTIONS)

        column = ORDER_COLUMNS[order_by]
        ordering = desc(column) if order_dir == "desc" else asc(column)
        with self.database.session() as db:
            query = self._apply_filters(
                db.query(Entry),
                category=category,
                status=status,
                priority=priority,
                search=search,
            )
            return (
                query.order_by(ordering, Entry.id.asc())
                .offset(offset)
                .limit(limit)
                .all()
            )

    def count(
        self,
        *,
        category: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
    ) -> int:
        self._validate_filters(status=status, priority=priority, search=search)
        with self.database.session() as db:
            query = self._apply_filters(
                db.query(func.count(Entry.id)),
                category=category,
                status=status,
                priority=priority,
                search=search,
            )
            return int(query.scalar() or 0)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update(
        self,
        entry_id,
        fields: dict,
        *,
        expected_updated_at=None,
    ) -> Optional[Entry]:
        """Patch the supplied fields; content is merged key by key.

        Returns None (and writes nothing) for unknown or archived entries.
        When title or content changes, the embedding is regenerated in a
        second commit; if the provider fails the previous vector is kept.
        """
        if not isinstance(fields, dict):
            raise ValidationIssue("fields must be an object", field="fields", error_type="invalid_type")
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationIssue(
                f"unsupported fields: {', '.join(unknown)}",
                field=unknown[0],
                error_type="invalid_value",
            )
        if "title" in fields:
            validate_required_text(fields["title"], "title", config.MAX_TITLE_LENGTH)
        if "status" in fields:
            validate_optional_text(fields["status"], "status", config.MAX_STATUS_LENGTH)
        if "priority" in fields:
            validate_choice(fields["priority"], "priority", PRIORITY_OPTIONS)
        due = parse_due_date(fields["due_date"]) if "due_date" in fields else None
        expected = (
            _coerce_timestamp(expected_updated_at, "expected_updated_at")
            if expected_updated_at is not None
            else None
        )

        key = coerce_uuid(entry_id)
        if key is None:
            return None

        content_changed = False
        with self.database.session() as db:
            entry = db.get(Entry, key)
            if entry is None or entry.archived_at is not None:
                return None

            if expected is not None and naive_utc(entry.updated_at) != expected:
                raise StaleEntryError(str(entry.id), expected, entry.updated_at)

            previous_status = entry.status
            if "content" in fields and fields["content"] is not None:
                patch = parse_content(parse_category(entry.category), fields["content"]).to_dict()
                merged = dict(entry.content or {})
                merged.update(patch)
                validate_content_size(merged)
                entry.content = merged
                content_changed = bool(patch)
            if "title" in fields:
                entry.title = fields["title"].strip()
            if "status" in fields:
                entry.status = fields["status"]
                self._check_status(parse_category(entry.category), entry.status)
            if "priority" in fields:
                entry.priority = fields["priority"]
            if "due_date" in fields:
                entry.due_date = due
            entry.updated_at = utcnow()
            db.commit()

        if "title" in fields or content_changed:
            vector = self._embed_entry(entry.title, entry.content)
            if vector is not None:
                with self.database.session() as db:
                    stored = db.get(Entry, key)
                    if stored is not None and stored.archived_at is None:
                        stored.embedding = vector
                        db.commit()
                        entry.embedding = vector

        if "status" in fields and fields["status"] != previous_status:
            self._log("status_changed", entry.id, {"from": previous_status, "to": entry.status})
        if content_changed and "notes" in fields["content"]:
            self._log("note_added", entry.id)
        return entry

    def archive(self, entry_id) -> Optional[Entry]:
        key = coerce_uuid(entry_id)
        if key is None:
            return None
        with self.database.session() as db:
            entry = db.get(Entry, key)
            if entry is None:
                return None
            if entry.archived_at is not None:
                return entry
            now = utcnow()
            entry.archived_at = now
            entry.updated_at = now
            db.commit()

        logger.info("Entry archived", extra={"entry_id": str(entry.id)})
        self._log("archived", entry.id)
        return entry

    def recategorize(
        self,
        entry_id,
        new_category,
        *,
        title: Optional[str] = None,
    ) -> Optional[Entry]:
        """Move an entry to another category by archive + create.

        The replacement keeps content, priority and due date, takes the target
        category's default status and is linked from the old entry with a
        superseded_by relation. The correction is also recorded in the inbox
        log as Fixed with full confidence.
        """
        target = parse_category(new_category)
        if title is not None:
            validate_required_text(title, "title", config.MAX_TITLE_LENGTH)

        old = self.get(entry_id)
        if old is None or old.archived_at is not None:
            return None

        payload = parse_content(target, old.content, strict=False).to_dict()
        new_title = title.strip() if title is not None else old.title
        if title is None and old.embedding is not None:
            embedding = list(old.embedding)
        else:
            embedding = self._embed_entry(new_title, payload)

        now = utcnow()
        with self.database.session() as db:
            stored = db.get(Entry, old.id)
            if stored is None or stored.archived_at is not None:
                return None
            stored.archived_at = now
            stored.updated_at = now
            replacement = Entry(
                category=target.value,
                title=new_title,
                status=DEFAULT_STATUS[target],
                priority=stored.priority,
                content=payload,
                embedding=embedding,
                due_date=stored.due_date,
                created_at=now,
                updated_at=now,
            )
            db.add(replacement)
            db.flush()
            db.add(
                EntryRelation(
                    source_id=stored.id,
                    target_id=replacement.id,
                    relation_type="superseded_by",
                    created_at=now,
                )
            )
            db.add(
                InboxLogEntry(
                    raw_input=new_title,
                    category=target.value,
                    confidence=1.0,
                    destination_id=str(replacement.id),
                    status="Fixed",
                    created_at=now,
                )
            )
            db.commit()

        logger.info(
            "Entry recategorized",
            extra={"entry_id": str(old.id), "replacement_id": str(replacement.id), "category": target.value},
        )
        self._log(
            "recategorized",
            replacement.id,
            {"from": old.category, "to": target.value, "previous_id": str(old.id)},
        )
        return replacement
