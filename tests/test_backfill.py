import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")

import pytest

from secondbrain.services.embedding_backfill import run_backfill
from secondbrain.services.embeddings import EmbeddingCircuitBreaker

from conftest import fake_vector, make_embedder


def _create_without_vectors(services, fake_provider, titles):
    fake_provider.fail = True
    entries = [services.entries.create("Idea", title) for title in titles]
    fake_provider.fail = False
    return entries


def test_backfill_embeds_missing_vectors(services, fake_provider, embedder):
    first, second, archived = _create_without_vectors(
        services, fake_provider, ["Coffee idea", "Garden idea", "Old idea"]
    )
    services.entries.archive(archived.id)
    before = services.entries.get(first.id).updated_at

    stats = run_backfill(services.database, embedder, batch_limit=10)
    assert stats == {"status": "ok", "processed": 2, "backfilled": 2, "skipped_count": 0}

    stored = services.entries.get(first.id)
    assert stored.embedding == pytest.approx(fake_vector("Coffee idea"))
    assert stored.updated_at == before
    assert services.entries.get(second.id).embedding is not None
    assert services.entries.get(archived.id).embedding is None

    # nothing left to do
    assert run_backfill(services.database, embedder)["processed"] == 0


def test_backfill_respects_batch_limit(services, fake_provider, embedder):
    _create_without_vectors(services, fake_provider, ["a idea", "b idea", "c idea"])
    stats = run_backfill(services.database, embedder, batch_limit=2)
    assert stats["backfilled"] == 2
    assert run_backfill(services.database, embedder, batch_limit=2)["backfilled"] == 1


def test_backfill_skips_when_provider_unavailable(services, fake_provider, embedder):
    _create_without_vectors(services, fake_provider, ["Coffee idea"])

    disabled = make_embedder(fake_provider, provider="none")
    assert run_backfill(services.database, disabled)["reason"] == "embedding_disabled"

    breaker = EmbeddingCircuitBreaker(failure_threshold=1, cooldown_seconds=60)
    breaker.record_failure("down")
    tripped = make_embedder(fake_provider, breaker=breaker)
    assert run_backfill(services.database, tripped)["reason"] == "circuit_open"

    assert run_backfill(None, embedder)["reason"] == "db_not_initialized"
    assert run_backfill(services.database, embedder, batch_limit=0)["reason"] == "batch_limit_disabled"


def test_backfill_reports_provider_errors(services, fake_provider, embedder):
    entry, = _create_without_vectors(services, fake_provider, ["Coffee idea"])
    fake_provider.fail = True
    stats = run_backfill(services.database, embedder)
    assert stats["status"] == "skipped"
    assert stats["reason"] == "provider_error"
    assert services.entries.get(entry.id).embedding is None
