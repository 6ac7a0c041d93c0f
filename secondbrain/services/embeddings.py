"""
Embedding provider client (OpenAI-compatible /embeddings endpoint).

Every failure mode - transport error, HTTP error, timeout, malformed body,
wrong vector size, disabled provider, open circuit breaker - surfaces as
EmbeddingProviderError so callers can degrade uniformly.
"""

from __future__ import annotations

import asyncio
import random
import threading
import time
from typing import Optional, List, Sequence

import httpx

import secondbrain.config as config
from secondbrain.errors import EmbeddingProviderError
from secondbrain.validators import validate_required_text

logger = config.logger

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class EmbeddingCircuitBreaker:
    """Opens after N consecutive provider failures; closes after a cooldown."""

    def __init__(self, failure_threshold: int, cooldown_seconds: int):
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = max(1, cooldown_seconds)
        self._lock = threading.Lock()
        self._failures = 0
        self._open_until = 0.0
        self._last_error: Optional[str] = None
        self._last_failure_at: Optional[float] = None
        self._last_success_at: Optional[float] = None

    def is_open(self) -> bool:
        with self._lock:
            return self._open_until > time.time()

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._open_until = 0.0
            self._last_success_at = time.time()

    def record_failure(self, error: str) -> None:
        now = time.time()
        with self._lock:
            self._failures += 1
            self._last_error = error
            self._last_failure_at = now
            if self._failures >= self.failure_threshold and self._open_until <= now:
                self._open_until = now + self.cooldown_seconds
                logger.warning(
                    "embedding_circuit_open",
                    extra={"failures": self._failures, "cooldown_seconds": self.cooldown_seconds},
                )

    def status(self) -> dict:
        def epoch(value: Optional[float]) -> Optional[int]:
            return int(value) if value else None

        with self._lock:
            return {
                "open": self._open_until > time.time(),
                "consecutive_failures": self._failures,
                "cooldown_until_epoch": epoch(self._open_until),
                "last_error": self._last_error,
                "last_failure_epoch": epoch(self._last_failure_at),
                "last_success_epoch": epoch(self._last_success_at),
            }


class EmbeddingClient:
    def __init__(
        self,
        *,
        provider: str = config.EMBEDDING_PROVIDER,
        api_key: Optional[str] = config.OPENAI_API_KEY,
        base_url: str = config.EMBEDDING_BASE_URL,
        model: str = config.EMBEDDING_MODEL,
        dimensions: int = config.EMBEDDING_DIM,
        max_input_chars: int = config.EMBEDDING_MAX_INPUT_CHARS,
        timeout_seconds: float = config.EMBEDDING_TIMEOUT_SECONDS,
        retry_max: int = config.EMBEDDING_RETRY_MAX,
        backoff_seconds: float = config.EMBEDDING_RETRY_BACKOFF_SECONDS,
        jitter_seconds: float = config.EMBEDDING_RETRY_JITTER_SECONDS,
        batch_delay_seconds: float = config.EMBEDDING_BATCH_DELAY_SECONDS,
        breaker: Optional[EmbeddingCircuitBreaker] = None,
        transport: Optional[httpx.BaseTransport] = None,
        async_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.dimensions = dimensions
        self.max_input_chars = max_input_chars
        self.timeout_seconds = timeout_seconds
        self.retry_max = max(0, retry_max)
        self.backoff_seconds = backoff_seconds
        self.jitter_seconds = jitter_seconds
        self.batch_delay_seconds = batch_delay_seconds
        self.breaker = breaker or EmbeddingCircuitBreaker(
            failure_threshold=config.EMBEDDING_FAILURE_THRESHOLD,
            cooldown_seconds=config.EMBEDDING_COOLDOWN_SECONDS,
        )
        self._transport = transport
        self._async_transport = async_transport
        self._http_client: Optional[httpx.Client] = None
        self._client_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self.provider != "none"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.Client:
        with self._client_lock:
            if self._http_client is None:
                self._http_client = httpx.Client(
                    timeout=httpx.Timeout(self.timeout_seconds),
                    limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
                    headers=self._headers(),
                    transport=self._transport,
                )
                logger.info("HTTP client initialized")
            return self._http_client

    def close(self) -> None:
        with self._client_lock:
            if self._http_client is not None:
                self._http_client.close()
                self._http_client = None
                logger.info("HTTP client closed")

    def status(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.model,
            "dimensions": self.dimensions,
            "circuit_breaker": self.breaker.status(),
        }

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _truncate(self, text: str) -> str:
        return text[: self.max_input_chars]

    def _preflight(self) -> None:
        if not self.enabled:
            self._raise_unavailable("embedding provider disabled")
        if self.breaker.is_open():
            self._raise_unavailable("circuit breaker open")

    def _payload(self, inputs) -> dict:
        return {"model": self.model, "input": inputs}

    def _raise_unavailable(self, detail: str) -> None:
        logger.warning("Embedding provider unavailable", extra={"detail": detail})
        raise EmbeddingProviderError(f"embedding provider unavailable: {detail}")

    def _fail(self, detail: str) -> None:
        self.breaker.record_failure(detail)
        self._raise_unavailable(detail)

    def _parse_vectors(self, response: httpx.Response, expected: int) -> List[List[float]]:
        try:
            items = response.json()["data"]
            items = sorted(items, key=lambda item: item.get("index", 0))
            vectors = [[float(value) for value in item["embedding"]] for item in items]
        except (ValueError, KeyError, TypeError, AttributeError):
            self._fail("malformed response")
        if len(vectors) != expected:
            self._fail(f"expected {expected} vectors, got {len(vectors)}")
        for vector in vectors:
            if len(vector) != self.dimensions:
                self._fail(f"expected dimension {self.dimensions}, got {len(vector)}")
        self.breaker.record_success()
        return vectors

    def _backoff_delay(self, attempt: int) -> float:
        base = self.backoff_seconds * (2 ** attempt)
        jitter = random.uniform(0, self.jitter_seconds) if self.jitter_seconds > 0 else 0.0
        return base + jitter

    def _request_sync(self, inputs, expected: int) -> List[List[float]]:
        self._preflight()
        client = self._client()
        url = f"{self.base_url}/embeddings"
        for attempt in range(self.retry_max + 1):
            try:
                response = client.post(url, json=self._payload(inputs))
            except httpx.RequestError as exc:
                if attempt >= self.retry_max:
                    self._fail(f"request error: {exc.__class__.__name__}")
                time.sleep(self._backoff_delay(attempt))
                continue

            if response.status_code in RETRYABLE_STATUS_CODES:
                if attempt >= self.retry_max:
                    self._fail(f"status {response.status_code}")
                time.sleep(self._backoff_delay(attempt))
                continue
            if response.status_code >= 400:
                self._fail(f"status {response.status_code}")
            return self._parse_vectors(response, expected)
        self._fail("retries exhausted")

    async def _request_async(self, inputs, expected: int) -> List[List[float]]:
        self._preflight()
        url = f"{self.base_url}/embeddings"
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            headers=self._headers(),
            transport=self._async_transport,
        ) as client:
            for attempt in range(self.retry_max + 1):
                try:
                    response = await client.post(url, json=self._payload(inputs))
                except httpx.RequestError as exc:
                    if attempt >= self.retry_max:
                        self._fail(f"request error: {exc.__class__.__name__}")
                    await asyncio.sleep(self._backoff_delay(attempt))
                    continue

                if response.status_code in RETRYABLE_STATUS_CODES:
                    if attempt >= self.retry_max:
                        self._fail(f"status {response.status_code}")
                    await asyncio.sleep(self._backoff_delay(attempt))
                    continue
                if response.status_code >= 400:
                    self._fail(f"status {response.status_code}")
                return self._parse_vectors(response, expected)
        self._fail("retries exhausted")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def embed(self, text: str) -> List[float]:
        """Generate a single embedding vector."""
        validate_required_text(text, "text", len(text) if isinstance(text, str) else 0)
        return self._request_sync(self._truncate(text), 1)[0]

    async def aembed(self, text: str) -> List[float]:
        """Async variant of embed()."""
        validate_required_text(text, "text", len(text) if isinstance(text, str) else 0)
        vectors = await self._request_async(self._truncate(text), 1)
        return vectors[0]

    def embed_batch(
        self,
        texts: Sequence[str],
        batch_size: int = config.EMBEDDING_BATCH_SIZE,
    ) -> List[List[float]]:
        """Embed texts in batches, pausing between batches for rate limits."""
        batch_size = max(1, batch_size)
        results: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            batch = [self._truncate(text) for text in texts[start:start + batch_size]]
            results.extend(self._request_sync(batch, len(batch)))
            if start + batch_size < len(texts) and self.batch_delay_seconds > 0:
                time.sleep(self.batch_delay_seconds)
        return results

    def try_embed(self, text: str) -> Optional[List[float]]:
        """embed() that maps provider failure to None."""
        try:
            return self.embed(text)
        except EmbeddingProviderError:
            return None
