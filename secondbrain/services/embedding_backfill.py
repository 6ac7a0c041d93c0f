"""
Embedding maintenance tasks.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import secondbrain.config as config
from secondbrain.categories import build_embedding_text
from secondbrain.db import Database
from secondbrain.errors import EmbeddingProviderError
from secondbrain.models import Entry
from secondbrain.services.embeddings import EmbeddingClient

logger = config.logger


def run_backfill(
    database: Optional[Database],
    embedder: Optional[EmbeddingClient],
    *,
    batch_limit: int = config.EMBEDDING_BACKFILL_BATCH_LIMIT,
) -> dict:
    """Embed non-archived entries that have no vector yet.

    Vectors are written without touching updated_at.
    """
    if database is None:
        return {"status": "skipped", "reason": "db_not_initialized"}
    if embedder is None or not embedder.enabled:
        return {"status": "skipped", "reason": "embedding_disabled"}
    if embedder.breaker.is_open():
        return {"status": "skipped", "reason": "circuit_open"}
    if batch_limit <= 0:
        return {"status": "skipped", "reason": "batch_limit_disabled"}

    processed = 0
    backfilled = 0
    skipped = 0
    with database.session() as db:
        missing = (
            db.query(Entry)
            .filter(Entry.archived_at.is_(None), Entry.embedding.is_(None))
            .order_by(Entry.created_at.asc(), Entry.id.asc())
            .limit(batch_limit)
            .all()
        )
        pending: list[tuple[Entry, str]] = []
        for entry in missing:
            processed += 1
            text_value = build_embedding_text(entry.title, entry.content)
            if not text_value:
                skipped += 1
                continue
            pending.append((entry, text_value))

        if pending:
            try:
                vectors = embedder.embed_batch([text_value for _, text_value in pending])
            except EmbeddingProviderError as exc:
                logger.warning("Embedding backfill batch failed", extra={"error": str(exc)})
                return {
                    "status": "skipped",
                    "reason": "provider_error",
                    "processed": processed,
                    "backfilled": 0,
                    "skipped_count": processed,
                }
            for (entry, _), vector in zip(pending, vectors):
                entry.embedding = vector
                backfilled += 1
            db.commit()

    return {
        "status": "ok",
        "processed": processed,
        "backfilled": backfilled,
        "skipped_count": skipped,
    }


async def embedding_backfill_loop(
    database: Database,
    embedder: EmbeddingClient,
    *,
    interval_seconds: int = config.EMBEDDING_BACKFILL_INTERVAL_SECONDS,
    batch_limit: int = config.EMBEDDING_BACKFILL_BATCH_LIMIT,
) -> None:
    if interval_seconds <= 0:
        return
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            stats = await asyncio.to_thread(
                run_backfill,
                database,
                embedder,
                batch_limit=batch_limit,
            )
            if stats.get("status") == "ok" and stats.get("backfilled", 0) > 0:
                logger.info("embedding_backfill_complete", extra=stats)
        except Exception as exc:
            logger.warning(f"Embedding backfill error: {exc}")
