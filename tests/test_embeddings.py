import asyncio
import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")

import httpx
import pytest

from secondbrain.errors import EmbeddingProviderError
from secondbrain.services.embeddings import EmbeddingCircuitBreaker, EmbeddingClient

from conftest import DIM, FakeEmbeddingProvider, fake_vector, make_embedder


def test_embed_posts_model_and_input(fake_provider, embedder):
    vector = embedder.embed("coffee with sarah")
    assert vector == pytest.approx(fake_vector("coffee with sarah"))
    assert fake_provider.calls == [{"model": "test-embedding", "input": "coffee with sarah"}]
    assert fake_provider.headers[0]["authorization"] == "Bearer test-key"


def test_embed_truncates_long_input(fake_provider):
    client = make_embedder(fake_provider, max_input_chars=10)
    client.embed("x" * 50)
    assert fake_provider.inputs == ["x" * 10]


def test_embed_rejects_empty_text(fake_provider, embedder):
    with pytest.raises(ValueError):
        embedder.embed("   ")
    assert fake_provider.calls == []


def test_embed_batch_splits_requests_and_keeps_order(fake_provider, embedder):
    texts = ["sarah", "acme", "coffee", "garden", "python"]
    vectors = embedder.embed_batch(texts, batch_size=2)
    assert len(fake_provider.calls) == 3
    assert fake_provider.inputs == [["sarah", "acme"], ["coffee", "garden"], ["python"]]
    assert vectors == [pytest.approx(fake_vector(text)) for text in texts]


def test_embed_batch_orders_by_response_index(fake_provider, embedder):
    fake_provider.responses.append(
        httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": fake_vector("b")},
                    {"index": 0, "embedding": fake_vector("a")},
                ]
            },
        )
    )
    vectors = embedder.embed_batch(["a", "b"])
    assert vectors[0] == pytest.approx(fake_vector("a"))
    assert vectors[1] == pytest.approx(fake_vector("b"))


def test_http_error_raises_provider_error(fake_provider, embedder):
    fake_provider.fail = True
    with pytest.raises(EmbeddingProviderError):
        embedder.embed("coffee")
    assert embedder.breaker.status()["consecutive_failures"] == 1


def test_wrong_dimension_raises_provider_error(fake_provider, embedder):
    fake_provider.responses.append(
        httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.1] * (DIM + 1)}]})
    )
    with pytest.raises(EmbeddingProviderError):
        embedder.embed("coffee")


def test_malformed_body_raises_provider_error(fake_provider, embedder):
    fake_provider.responses.append(httpx.Response(200, json={"unexpected": True}))
    with pytest.raises(EmbeddingProviderError):
        embedder.embed("coffee")

    fake_provider.responses.append(httpx.Response(200, content=b"not json"))
    with pytest.raises(EmbeddingProviderError):
        embedder.embed("coffee")


def test_transport_error_raises_provider_error():
    def broken(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_embedder(FakeEmbeddingProvider(), transport=httpx.MockTransport(broken))
    with pytest.raises(EmbeddingProviderError):
        client.embed("coffee")


def test_retry_recovers_from_transient_status(fake_provider):
    fake_provider.responses.append(httpx.Response(503, json={"error": "busy"}))
    client = make_embedder(fake_provider, retry_max=1)
    assert client.embed("garden") == pytest.approx(fake_vector("garden"))
    assert len(fake_provider.calls) == 2
    assert client.breaker.status()["consecutive_failures"] == 0


def test_client_error_is_not_retried(fake_provider):
    fake_provider.fail = True
    fake_provider.fail_status = 400
    client = make_embedder(fake_provider, retry_max=3)
    with pytest.raises(EmbeddingProviderError):
        client.embed("garden")
    assert len(fake_provider.calls) == 1


def test_disabled_provider_never_calls_transport(fake_provider):
    client = make_embedder(fake_provider, provider="none")
    assert not client.enabled
    with pytest.raises(EmbeddingProviderError):
        client.embed("coffee")
    assert fake_provider.calls == []


def test_circuit_breaker_opens_after_threshold(fake_provider):
    fake_provider.fail = True
    breaker = EmbeddingCircuitBreaker(failure_threshold=2, cooldown_seconds=60)
    client = make_embedder(fake_provider, breaker=breaker)
    for _ in range(2):
        with pytest.raises(EmbeddingProviderError):
            client.embed("coffee")
    assert breaker.is_open()

    fake_provider.fail = False
    with pytest.raises(EmbeddingProviderError):
        client.embed("coffee")
    assert len(fake_provider.calls) == 2
    assert client.status()["circuit_breaker"]["open"] is True


def test_breaker_success_resets_failures():
    breaker = EmbeddingCircuitBreaker(failure_threshold=3, cooldown_seconds=10)
    breaker.record_failure("boom")
    breaker.record_success()
    status = breaker.status()
    assert status["consecutive_failures"] == 0
    assert status["last_error"] == "boom"
    assert status["open"] is False


def test_aembed_uses_async_transport(fake_provider, embedder):
    vector = asyncio.run(embedder.aembed("budget review"))
    assert vector == pytest.approx(fake_vector("budget review"))
    assert fake_provider.inputs == ["budget review"]


def test_try_embed_maps_failure_to_none(fake_provider, embedder):
    fake_provider.fail = True
    assert embedder.try_embed("coffee") is None


def test_default_client_reads_configuration():
    client = EmbeddingClient(provider="none")
    assert client.model
    assert client.dimensions > 0
    client.close()
