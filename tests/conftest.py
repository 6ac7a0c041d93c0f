import hashlib
import json
import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")
os.environ.setdefault("EMBEDDING_PROVIDER", "openai")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("EMBEDDING_BACKFILL_ENABLED", "false")
os.environ.setdefault("EMBEDDING_HEALTHCHECK_ENABLED", "true")

import httpx
import pytest

from secondbrain.container import build_services
from secondbrain.db import Database
from secondbrain.services.embeddings import EmbeddingCircuitBreaker, EmbeddingClient

TOPICS = ("sarah", "acme", "coffee", "garden", "python", "budget")
NOISE_DIMS = 2
DIM = len(TOPICS) + NOISE_DIMS


def fake_vector(text: str) -> list[float]:
    """One axis per topic word present, plus a small text-derived wobble."""
    lowered = text.lower()
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    vector = [1.0 if topic in lowered else 0.0 for topic in TOPICS]
    vector.extend((digest[i] / 255.0 - 0.5) * 0.1 for i in range(NOISE_DIMS))
    return vector


class FakeEmbeddingProvider:
    def __init__(self):
        self.calls: list[dict] = []
        self.headers: list[httpx.Headers] = []
        self.fail = False
        self.fail_status = 503
        self.responses: list[httpx.Response] = []
        self.vectors: dict[str, list[float]] = {}
        self.on_request = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.calls.append(payload)
        self.headers.append(request.headers)
        if self.on_request is not None:
            self.on_request(payload)
        if self.responses:
            return self.responses.pop(0)
        if self.fail:
            return httpx.Response(self.fail_status, json={"error": "unavailable"})
        inputs = payload["input"]
        if isinstance(inputs, str):
            inputs = [inputs]
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": index, "embedding": self.vectors.get(text) or fake_vector(text)}
                    for index, text in enumerate(inputs)
                ],
            },
        )

    @property
    def inputs(self) -> list:
        return [call["input"] for call in self.calls]


def make_embedder(fake: FakeEmbeddingProvider, **overrides) -> EmbeddingClient:
    transport = httpx.MockTransport(fake.handler)
    options = {
        "provider": "openai",
        "api_key": "test-key",
        "base_url": "https://embeddings.test/v1",
        "model": "test-embedding",
        "dimensions": DIM,
        "retry_max": 0,
        "backoff_seconds": 0.0,
        "jitter_seconds": 0.0,
        "batch_delay_seconds": 0.0,
        "breaker": EmbeddingCircuitBreaker(failure_threshold=100, cooldown_seconds=60),
        "transport": transport,
        "async_transport": transport,
    }
    options.update(overrides)
    return EmbeddingClient(**options)


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def embedder(fake_provider):
    client = make_embedder(fake_provider)
    yield client
    client.close()


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'secondbrain-test.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def services(database, embedder):
    return build_services(database, embedder, activity_enabled=True)
