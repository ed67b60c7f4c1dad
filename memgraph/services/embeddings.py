"""
Embedding provider: OpenAI-compatible /embeddings endpoint over httpx.
"""

from __future__ import annotations

import asyncio
import random
import threading
import time
from typing import List, NoReturn, Optional, Sequence

import httpx

import memgraph.config as config
from memgraph.errors import EmbeddingUnavailable

logger = config.logger

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def embedding_text(label: str, body: Optional[str]) -> str:
    """Text embedded for a node: its label plus body, or the label alone."""
    return f"{label}: {body or label}"


def truncate_for_embedding(text: str) -> str:
    return text[: config.MAX_EMBEDDING_TEXT_LENGTH]


def _raise_embedding_unavailable(detail: str) -> NoReturn:
    logger.warning("embedding_provider_unavailable", extra={"detail": detail})
    raise EmbeddingUnavailable(f"embedding provider unavailable: {detail}")


class OpenAIEmbeddingProvider:
    """Async client for an OpenAI-compatible embeddings API.

    Transport errors and 429/5xx responses are retried with exponential
    backoff plus jitter. A call that still fails counts toward
    ``failure_threshold``; once reached, the provider refuses requests for
    ``cooldown_seconds`` so graph writes and activations fail fast during an
    outage. Any successful response clears the count.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = config.EMBEDDING_MODEL,
        api_base: str = config.EMBEDDING_API_BASE,
        timeout_seconds: float = config.EMBEDDING_TIMEOUT_SECONDS,
        retry_max: int = config.EMBEDDING_RETRY_MAX,
        backoff_seconds: float = config.EMBEDDING_RETRY_BACKOFF_SECONDS,
        jitter_seconds: float = config.EMBEDDING_RETRY_JITTER_SECONDS,
        failure_threshold: int = config.EMBEDDING_FAILURE_THRESHOLD,
        cooldown_seconds: float = config.EMBEDDING_COOLDOWN_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_max = max(0, retry_max)
        self.backoff_seconds = backoff_seconds
        self.jitter_seconds = jitter_seconds
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = max(0.0, cooldown_seconds)
        self._transport = transport

        self._state_lock = threading.Lock()
        self._failed_calls = 0
        self._cooldown_until = 0.0
        self._last_error: Optional[str] = None
        self._last_success_ts: Optional[float] = None

    @property
    def cooling_down(self) -> bool:
        with self._state_lock:
            return time.time() < self._cooldown_until

    def _succeeded(self) -> None:
        with self._state_lock:
            self._failed_calls = 0
            self._cooldown_until = 0.0
            self._last_success_ts = time.time()

    def _fail(self, detail: str) -> NoReturn:
        with self._state_lock:
            self._failed_calls += 1
            self._last_error = detail
            if self._failed_calls >= self.failure_threshold:
                self._cooldown_until = time.time() + self.cooldown_seconds
                logger.warning(
                    "embedding_provider_cooldown",
                    extra={"failed_calls": self._failed_calls, "cooldown_seconds": self.cooldown_seconds},
                )
        _raise_embedding_unavailable(detail)

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        vectors = await self._request(truncate_for_embedding(text))
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed many texts in one request, returned in input order."""
        if not texts:
            return []
        inputs = [truncate_for_embedding(text) for text in texts]
        vectors = await self._request(inputs)
        if len(vectors) != len(inputs):
            self._fail(f"expected {len(inputs)} embeddings, got {len(vectors)}")
        return vectors

    async def _request(self, payload_input) -> List[List[float]]:
        if not self.api_key:
            _raise_embedding_unavailable("api key not configured")
        if self.cooling_down:
            _raise_embedding_unavailable("provider cooling down after repeated failures")

        timeout = httpx.Timeout(self.timeout_seconds)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            for attempt in range(self.retry_max + 1):
                try:
                    response = await client.post(
                        f"{self.api_base}/embeddings",
                        headers=headers,
                        json={"model": self.model, "input": payload_input},
                    )
                except httpx.RequestError as exc:
                    if attempt >= self.retry_max:
                        self._fail(type(exc).__name__)
                    await self._sleep_backoff(attempt)
                    continue

                if response.status_code in RETRYABLE_STATUS_CODES and attempt < self.retry_max:
                    await self._sleep_backoff(attempt)
                    continue
                if response.status_code >= 400:
                    self._fail(f"status {response.status_code}")

                try:
                    vectors = parse_embedding_response(response.json())
                except (ValueError, KeyError, TypeError):
                    self._fail("malformed response")
                self._succeeded()
                return vectors
        self._fail("no attempts made")

    async def _sleep_backoff(self, attempt: int) -> None:
        base = self.backoff_seconds * (2 ** attempt)
        jitter = random.uniform(0, self.jitter_seconds) if self.jitter_seconds > 0 else 0.0
        await asyncio.sleep(base + jitter)

    def status(self) -> dict:
        with self._state_lock:
            cooldown = {
                "open": time.time() < self._cooldown_until,
                "failed_calls": self._failed_calls,
                "cooldown_until_epoch": int(self._cooldown_until) if self._cooldown_until else None,
                "last_error": self._last_error,
                "last_success_epoch": int(self._last_success_ts) if self._last_success_ts else None,
            }
        return {
            "provider": "openai",
            "model": self.model,
            "configured": bool(self.api_key),
            "cooldown": cooldown,
        }


def parse_embedding_response(data: dict) -> List[List[float]]:
    """Extract vectors from a provider payload, ordered by each item's ``index``."""
    items = data["data"]
    if not isinstance(items, list) or not items:
        raise ValueError("embedding response has no data")
    ordered = sorted(items, key=lambda item: item.get("index", 0))
    return [[float(value) for value in item["embedding"]] for item in ordered]


class DisabledEmbeddingProvider:
    """Provider used when embeddings are not configured; every call fails."""

    async def embed(self, text: str) -> List[float]:
        _raise_embedding_unavailable("embedding provider disabled")

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        _raise_embedding_unavailable("embedding provider disabled")

    def status(self) -> dict:
        return {"provider": "none", "configured": False}


def build_embedding_provider() -> Optional[OpenAIEmbeddingProvider]:
    """Provider from configuration, or None when embeddings are disabled."""
    if config.EMBEDDING_PROVIDER == "none":
        return None
    if not config.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set; embeddings disabled")
        return None
    return OpenAIEmbeddingProvider(config.OPENAI_API_KEY)


__all__ = [
    "OpenAIEmbeddingProvider",
    "DisabledEmbeddingProvider",
    "build_embedding_provider",
    "parse_embedding_response",
    "truncate_for_embedding",
    "embedding_text",
]
