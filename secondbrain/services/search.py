"""
Hybrid search: vector similarity first, keyword scan when no query vector.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, List, Sequence

import numpy as np
from sqlalchemy import text

import secondbrain.config as config
from secondbrain.categories import parse_category
from secondbrain.db import Database
from secondbrain.errors import EmbeddingProviderError
from secondbrain.models import Entry
from secondbrain.services.activity import ActivityLog
from secondbrain.services.embeddings import EmbeddingClient
from secondbrain.services.entry_repository import keyword_clause, serialize_entry
from secondbrain.validators import validate_limit, validate_required_text

logger = config.logger

# Score given to entries that have no usable vector (cosine distance 2).
UNEMBEDDED_SCORE = -1.0


@dataclass
class SearchHit:
    entry: Entry
    relevance_score: float

    def to_dict(self) -> dict:
        payload = serialize_entry(self.entry)
        payload["relevance_score"] = self.relevance_score
        return payload


def _sort_key(item: tuple[Entry, float]):
    entry, score = item
    return (-score, str(entry.id))


def score_entries(
    query_vector: Sequence[float],
    entries: Iterable[Entry],
) -> List[tuple[Entry, float]]:
    """Cosine similarity of every entry against the query, best first.

    Entries without a vector, or with one of a different dimension, score
    UNEMBEDDED_SCORE. Ties are broken by id ascending.
    """
    query = np.asarray(query_vector, dtype=np.float64)
    query_norm = float(np.linalg.norm(query))
    scored: list[tuple[Entry, float]] = []
    for entry in entries:
        score = UNEMBEDDED_SCORE
        if entry.embedding is not None and query_norm > 0:
            vector = np.asarray(entry.embedding, dtype=np.float64)
            norm = float(np.linalg.norm(vector))
            if vector.shape == query.shape and norm > 0:
                score = float(np.dot(query, vector) / (query_norm * norm))
        scored.append((entry, score))
    scored.sort(key=_sort_key)
    return scored


def vector_search_enabled(database: Database) -> bool:
    return database.is_postgres and config.VECTOR_BACKEND_EFFECTIVE == "pgvector"


class HybridSearchEngine:
    def __init__(
        self,
        database: Database,
        embedder: Optional[EmbeddingClient],
        activity: Optional[ActivityLog] = None,
    ):
        self.database = database
        self.embedder = embedder
        self.activity = activity

    def _query_vector(self, query: str) -> Optional[List[float]]:
        if self.embedder is None:
            return None
        try:
            return self.embedder.embed(query)
        except EmbeddingProviderError as exc:
            logger.warning("Query embedding failed; using keyword search", extra={"error": str(exc)})
            return None

    def _vector_rows_sql(
        self,
        vector: Sequence[float],
        category: Optional[str],
        limit: int,
    ) -> List[tuple[Entry, float]]:
        category_sql = "AND category = :category" if category else ""
        sql = text(
            f"""
            SELECT
                id,
                CASE
                    WHEN embedding IS NULL THEN :unembedded
                    ELSE 1 - (embedding <=> cast(:embedding as vector))
                END AS similarity
            FROM entries
            WHERE archived_at IS NULL
            {category_sql}
            ORDER BY similarity DESC, id ASC
            LIMIT :limit
            """
        )
        params = {
            "embedding": str([float(value) for value in vector]),
            "unembedded": UNEMBEDDED_SCORE,
            "limit": limit,
        }
        if category:
            params["category"] = category
        with self.database.session() as db:
            rows = db.execute(sql, params).fetchall()
            if not rows:
                return []
            entries = {
                entry.id: entry
                for entry in db.query(Entry).filter(Entry.id.in_([row.id for row in rows])).all()
            }
        return [
            (entries[row.id], float(row.similarity))
            for row in rows
            if row.id in entries
        ]

    def _vector_rows_local(
        self,
        vector: Sequence[float],
        category: Optional[str],
        limit: int,
    ) -> List[tuple[Entry, float]]:
        with self.database.session() as db:
            query = db.query(Entry).filter(Entry.archived_at.is_(None))
            if category:
                query = query.filter(Entry.category == category)
            candidates = query.all()
        return score_entries(vector, candidates)[:limit]

    def _keyword_rows(
        self,
        query: str,
        category: Optional[str],
        limit: int,
    ) -> List[tuple[Entry, float]]:
        with self.database.session() as db:
            builder = db.query(Entry).filter(Entry.archived_at.is_(None), keyword_clause(query))
            if category:
                builder = builder.filter(Entry.category == category)
            rows = builder.order_by(Entry.updated_at.desc(), Entry.id.asc()).limit(limit).all()
        return [(entry, 0.0) for entry in rows]

    def search(
        self,
        query: str,
        *,
        category: Optional[str] = None,
        limit: int = config.DEFAULT_SEARCH_LIMIT,
    ) -> List[SearchHit]:
        """Rank non-archived entries against a free-text query.

        With a query vector the ranking is cosine similarity (entries without
        a vector trail with -1.0). Without one, every substring match over
        title or content is returned with a score of 0.0, newest first.
        """
        validate_required_text(query, "query", config.MAX_QUERY_LENGTH)
        validate_limit(limit, "limit", config.MAX_RESULT_LIMIT)
        category_value = parse_category(category).value if category else None

        vector = self._query_vector(query)
        if vector is None:
            mode = "keyword"
            rows = self._keyword_rows(query, category_value, limit)
        elif vector_search_enabled(self.database):
            mode = "vector"
            rows = self._vector_rows_sql(vector, category_value, limit)
        else:
            mode = "vector_local"
            rows = self._vector_rows_local(vector, category_value, limit)

        if self.activity is not None:
            self.activity.log(
                "searched",
                metadata={"mode": mode, "category": category_value, "result_count": len(rows)},
            )
        return [SearchHit(entry=entry, relevance_score=score) for entry, score in rows]
