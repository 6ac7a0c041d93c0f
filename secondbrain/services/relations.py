"""
Explicit relations between entries and similarity-based suggestions.

Only explicit links are persisted. Suggestions are computed on demand from
stored vectors and never include the source entry or anything already
linked to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, List, Sequence

from sqlalchemy import or_, text

import secondbrain.config as config
from secondbrain.db import Database
from secondbrain.errors import EmbeddingProviderError, ValidationIssue
from secondbrain.models import Entry, EntryRelation, coerce_uuid, utcnow
from secondbrain.services.embeddings import EmbeddingClient
from secondbrain.services.entry_repository import serialize_entry
from secondbrain.services.search import SearchHit, score_entries, vector_search_enabled
from secondbrain.validators import (
    validate_limit,
    validate_required_text,
    validate_unit_interval,
)

logger = config.logger

RELATION_TYPES = ("related_to", "part_of", "inspired_by", "superseded_by")


def serialize_relation(relation: EntryRelation) -> dict:
    return {
        "id": str(relation.id),
        "source_id": str(relation.source_id),
        "target_id": str(relation.target_id),
        "relation_type": relation.relation_type,
        "created_at": relation.created_at.isoformat() if relation.created_at else None,
    }


@dataclass
class LinkedEntry:
    entry: Entry
    relation: EntryRelation

    @property
    def direction(self) -> str:
        return "outgoing" if str(self.relation.target_id) == str(self.entry.id) else "incoming"

    def to_dict(self) -> dict:
        return {
            "entry": serialize_entry(self.entry),
            "relation": serialize_relation(self.relation),
            "direction": self.direction,
        }


def _normalize_relation_type(relation_type: str) -> str:
    if not isinstance(relation_type, str) or not relation_type.strip():
        raise ValidationIssue(
            "relation_type is required",
            field="relation_type",
            error_type="required",
        )
    value = relation_type.strip().lower()
    if value not in RELATION_TYPES:
        raise ValidationIssue(
            f"relation_type must be one of: {', '.join(RELATION_TYPES)}",
            field="relation_type",
            error_type="invalid_value",
        )
    return value


class RelationEngine:
    def __init__(self, database: Database, embedder: Optional[EmbeddingClient]):
        self.database = database
        self.embedder = embedder

    # ------------------------------------------------------------------
    # Explicit relations
    # ------------------------------------------------------------------

    def add_relation(
        self,
        source_id,
        target_id,
        relation_type: str = "related_to",
    ) -> Optional[EntryRelation]:
        rel_type = _normalize_relation_type(relation_type)
        source_key = coerce_uuid(source_id)
        target_key = coerce_uuid(target_id)
        if source_key is not None and source_key == target_key:
            raise ValidationIssue(
                "an entry cannot be related to itself",
                field="target_id",
                error_type="self_link",
            )
        if source_key is None or target_key is None:
            return None

        with self.database.session() as db:
            if db.get(Entry, source_key) is None or db.get(Entry, target_key) is None:
                return None
            relation = EntryRelation(
                source_id=source_key,
                target_id=target_key,
                relation_type=rel_type,
                created_at=utcnow(),
            )
            db.add(relation)
            db.commit()

        logger.info(
            "Relation created",
            extra={"relation_id": str(relation.id), "relation_type": rel_type},
        )
        return relation

    def remove_relation(self, relation_id) -> bool:
        key = coerce_uuid(relation_id)
        if key is None:
            return False
        with self.database.session() as db:
            relation = db.get(EntryRelation, key)
            if relation is None:
                return False
            db.delete(relation)
            db.commit()
        return True

    def _relations_for(self, db, key) -> List[EntryRelation]:
        return (
            db.query(EntryRelation)
            .filter(or_(EntryRelation.source_id == key, EntryRelation.target_id == key))
            .order_by(EntryRelation.created_at.asc(), EntryRelation.id.asc())
            .all()
        )

    def _linked_ids(self, db, key) -> set[str]:
        linked: set[str] = set()
        for relation in self._relations_for(db, key):
            other = relation.target_id if str(relation.source_id) == str(key) else relation.source_id
            linked.add(str(other))
        return linked

    def get_linked(self, entry_id) -> List[LinkedEntry]:
        """Entries on the other side of any relation, earliest link first."""
        key = coerce_uuid(entry_id)
        if key is None:
            return []
        with self.database.session() as db:
            relations = self._relations_for(db, key)
            ordered: list[tuple[object, EntryRelation]] = []
            seen: set[str] = set()
            for relation in relations:
                other = relation.target_id if str(relation.source_id) == str(key) else relation.source_id
                if str(other) in seen:
                    continue
                seen.add(str(other))
                ordered.append((other, relation))
            if not ordered:
                return []
            entries = {
                str(entry.id): entry
                for entry in db.query(Entry)
                .filter(Entry.id.in_([other for other, _ in ordered]), Entry.archived_at.is_(None))
                .all()
            }
        return [
            LinkedEntry(entry=entries[str(other)], relation=relation)
            for other, relation in ordered
            if str(other) in entries
        ]

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def _rank_sql(
        self,
        vector: Sequence[float],
        excluded: set[str],
        limit: int,
        threshold: float,
    ) -> List[tuple[Entry, float]]:
        sql = text(
            """
            SELECT id, 1 - (embedding <=> cast(:embedding as vector)) AS similarity
            FROM entries
            WHERE archived_at IS NULL
            AND embedding IS NOT NULL
            AND 1 - (embedding <=> cast(:embedding as vector)) >= :threshold
            ORDER BY similarity DESC, id ASC
            LIMIT :limit
            """
        )
        params = {
            "embedding": str([float(value) for value in vector]),
            "threshold": threshold,
            "limit": limit + len(excluded),
        }
        with self.database.session() as db:
            rows = [row for row in db.execute(sql, params).fetchall() if str(row.id) not in excluded]
            rows = rows[:limit]
            if not rows:
                return []
            entries = {
                entry.id: entry
                for entry in db.query(Entry).filter(Entry.id.in_([row.id for row in rows])).all()
            }
        return [(entries[row.id], float(row.similarity)) for row in rows if row.id in entries]

    def _rank_local(
        self,
        vector: Sequence[float],
        excluded: set[str],
        limit: int,
        threshold: float,
    ) -> List[tuple[Entry, float]]:
        with self.database.session() as db:
            candidates = (
                db.query(Entry)
                .filter(Entry.archived_at.is_(None), Entry.embedding.isnot(None))
                .all()
            )
        candidates = [entry for entry in candidates if str(entry.id) not in excluded]
        ranked = [
            (entry, score)
            for entry, score in score_entries(vector, candidates)
            if score >= threshold
        ]
        return ranked[:limit]

    def _rank(
        self,
        vector: Sequence[float],
        excluded: set[str],
        limit: int,
        threshold: float,
    ) -> List[SearchHit]:
        if vector_search_enabled(self.database):
            rows = self._rank_sql(vector, excluded, limit, threshold)
        else:
            rows = self._rank_local(vector, excluded, limit, threshold)
        return [SearchHit(entry=entry, relevance_score=score) for entry, score in rows]

    def suggest_related(
        self,
        entry_id,
        *,
        limit: int = config.SUGGEST_DEFAULT_LIMIT,
        threshold: float = config.SUGGEST_DEFAULT_THRESHOLD,
    ) -> List[SearchHit]:
        validate_limit(limit, "limit", config.MAX_RESULT_LIMIT)
        validate_unit_interval(threshold, "threshold")

        key = coerce_uuid(entry_id)
        if key is None:
            return []
        with self.database.session() as db:
            source = db.get(Entry, key)
            if source is None or source.archived_at is not None or source.embedding is None:
                return []
            vector = [float(value) for value in source.embedding]
            excluded = self._linked_ids(db, key)
        excluded.add(str(key))
        return self._rank(vector, excluded, limit, float(threshold))

    def suggest_for_text(
        self,
        text_value: str,
        *,
        exclude_id=None,
        limit: int = config.SUGGEST_DEFAULT_LIMIT,
        threshold: float = config.SUGGEST_DEFAULT_THRESHOLD,
    ) -> List[SearchHit]:
        """Suggestions for text that is not stored yet (e.g. a draft capture)."""
        validate_required_text(text_value, "text", config.MAX_TEXT_LENGTH)
        validate_limit(limit, "limit", config.MAX_RESULT_LIMIT)
        validate_unit_interval(threshold, "threshold")
        if self.embedder is None:
            return []
        try:
            vector = self.embedder.embed(text_value)
        except EmbeddingProviderError as exc:
            logger.warning("Suggestion embedding failed", extra={"error": str(exc)})
            return []

        excluded: set[str] = set()
        key = coerce_uuid(exclude_id) if exclude_id is not None else None
        if key is not None:
            excluded.add(str(key))
            with self.database.session() as db:
                excluded |= self._linked_ids(db, key)
        return self._rank(vector, excluded, limit, float(threshold))
