import asyncio
import json

import httpx
import pytest

from memgraph.errors import EmbeddingUnavailable
from memgraph.services import embeddings
from memgraph.services.embeddings import (
    DisabledEmbeddingProvider,
    OpenAIEmbeddingProvider,
    build_embedding_provider,
    embedding_text,
    parse_embedding_response,
)


def _provider(handler, **kwargs):
    kwargs.setdefault("retry_max", 0)
    kwargs.setdefault("backoff_seconds", 0.0)
    kwargs.setdefault("jitter_seconds", 0.0)
    return OpenAIEmbeddingProvider(
        "test-key",
        api_base="https://embeddings.test/v1",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_embed_batch_restores_input_order():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": [0.0, 1.0]},
                    {"index": 0, "embedding": [1.0, 0.0]},
                ]
            },
        )

    provider = _provider(handler)
    vectors = asyncio.run(provider.embed_batch(["first", "second"]))

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert seen["url"] == "https://embeddings.test/v1/embeddings"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["input"] == ["first", "second"]


def test_embed_truncates_long_input(monkeypatch):
    monkeypatch.setattr(embeddings.config, "MAX_EMBEDDING_TEXT_LENGTH", 10)
    captured = {}

    def handler(request):
        captured["input"] = json.loads(request.content)["input"]
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5]}]})

    assert asyncio.run(_provider(handler).embed("x" * 50)) == [0.5]
    assert captured["input"] == "x" * 10


def test_empty_batch_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert asyncio.run(_provider(handler).embed_batch([])) == []


def test_retries_transient_status_then_succeeds():
    attempts = []

    def handler(request):
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(503, json={"error": "busy"})
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})

    provider = _provider(handler, retry_max=2)
    assert asyncio.run(provider.embed("hello")) == [1.0]
    assert len(attempts) == 2
    assert provider.status()["cooldown"]["failed_calls"] == 0


def test_transport_errors_raise_embedding_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(_provider(handler, retry_max=1).embed("hello"))


def test_repeated_failures_start_cooldown():
    attempts = []

    def handler(request):
        attempts.append(1)
        return httpx.Response(401, json={"error": "bad key"})

    provider = _provider(handler, failure_threshold=1, cooldown_seconds=60)

    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(provider.embed("hello"))
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(provider.embed("hello"))

    assert len(attempts) == 1
    assert provider.status()["cooldown"]["open"] is True


def test_success_clears_failed_calls_before_cooldown():
    responses = [
        httpx.Response(500, json={"error": "down"}),
        httpx.Response(200, json={"data": [{"index": 0, "embedding": [2.0]}]}),
        httpx.Response(500, json={"error": "down"}),
    ]

    def handler(request):
        return responses.pop(0)

    provider = _provider(handler, failure_threshold=2, cooldown_seconds=60)

    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(provider.embed("hello"))
    assert provider.status()["cooldown"]["failed_calls"] == 1
    assert asyncio.run(provider.embed("hello")) == [2.0]
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(provider.embed("hello"))

    status = provider.status()["cooldown"]
    assert status["failed_calls"] == 1
    assert status["open"] is False
    assert status["last_error"] == "status 500"
    assert provider.cooling_down is False


def test_batch_size_mismatch_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})

    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(_provider(handler).embed_batch(["a", "b"]))


def test_malformed_response_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(_provider(handler).embed("a"))


def test_missing_api_key_fails_without_request():
    provider = OpenAIEmbeddingProvider(None, transport=httpx.MockTransport(lambda request: None))
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(provider.embed("a"))


def test_disabled_provider_and_factory(monkeypatch):
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(DisabledEmbeddingProvider().embed("a"))
    assert asyncio.run(DisabledEmbeddingProvider().embed_batch([])) == []

    monkeypatch.setattr(embeddings.config, "EMBEDDING_PROVIDER", "none")
    assert build_embedding_provider() is None
    monkeypatch.setattr(embeddings.config, "EMBEDDING_PROVIDER", "openai")
    monkeypatch.setattr(embeddings.config, "OPENAI_API_KEY", None)
    assert build_embedding_provider() is None
    monkeypatch.setattr(embeddings.config, "OPENAI_API_KEY", "sk-test")
    assert isinstance(build_embedding_provider(), OpenAIEmbeddingProvider)


def test_parse_and_embedding_text_helpers():
    payload = {"data": [{"index": 2, "embedding": [3]}, {"index": 0, "embedding": [1]}, {"index": 1, "embedding": [2]}]}
    assert parse_embedding_response(payload) == [[1.0], [2.0], [3.0]]
    assert embedding_text("Calculator", None) == "Calculator: Calculator"
    assert embedding_text("Deploy", "fridays") == "Deploy: fridays"
