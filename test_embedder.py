#!/usr/bin/env python3
"""
Test script for the embedder: retries, timeouts, batch degradation
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from chatrag.rag.embedder import Embedder
from chatrag.rag.exceptions import ConfigurationError, ProviderError
from chatrag.rag.providers import OpenAIEmbeddingProvider, get_embedding_provider
from chatrag.rag.rate_limiter import TokenRateLimiter
from rag_fakes import DIMENSIONS, FakeEmbeddingProvider, make_embedder


def test_generate_embedding():
    provider = FakeEmbeddingProvider(vectors={"pool hours": [0.1, 0.2, 0.3, 0.4]})
    embedder = make_embedder(provider)

    vector = asyncio.run(embedder.generate_embedding("  pool hours  "))

    assert vector == [0.1, 0.2, 0.3, 0.4]
    assert provider.calls == ["pool hours"]
    assert embedder.usage["total_tokens"] == 2


def test_blank_text_returns_zero_vector():
    provider = FakeEmbeddingProvider()
    embedder = make_embedder(provider)

    vector = asyncio.run(embedder.generate_embedding("   "))

    assert vector == [0.0] * DIMENSIONS
    assert provider.calls == []


def test_rate_limited_until_retries_exhausted():
    """Four consecutive 429s with max_retries=3: one attempt plus three retries, then the error propagates"""
    provider = FakeEmbeddingProvider(failures=[ProviderError("rate limited", status_code=429) for _ in range(4)])
    embedder = make_embedder(provider, max_retries=3)

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(embedder.generate_embedding("hello"))

    print(f"Raised: {exc_info.value}")
    assert exc_info.value.status_code == 429
    assert len(provider.calls) == 4


def test_retry_delay_grows_with_attempt():
    """With retry_delay=d the waits before retries 1, 2, 3 are d, 2d, 3d"""
    delays = []

    async def record_sleep(seconds):
        delays.append(seconds)

    provider = FakeEmbeddingProvider(failures=[ProviderError("rate limited", status_code=429) for _ in range(4)])
    embedder = Embedder(
        provider, TokenRateLimiter(100000), max_retries=3, retry_delay=0.5, sleep=record_sleep
    )

    with pytest.raises(ProviderError):
        asyncio.run(embedder.generate_embedding("hello"))

    assert delays == [0.5, 1.0, 1.5]
    assert len(provider.calls) == 4


def test_recovers_after_transient_failures():
    provider = FakeEmbeddingProvider(failures=[ProviderError("busy", status_code=503) for _ in range(2)])
    embedder = make_embedder(provider, max_retries=3)

    vector = asyncio.run(embedder.generate_embedding("hello"))

    assert len(vector) == DIMENSIONS
    assert len(provider.calls) == 3


def test_configuration_error_is_not_retried():
    provider = FakeEmbeddingProvider(failures=[ConfigurationError("no key")])
    embedder = make_embedder(provider, max_retries=3)

    with pytest.raises(ConfigurationError):
        asyncio.run(embedder.generate_embedding("hello"))
    assert len(provider.calls) == 1


def test_unexpected_errors_become_provider_errors():
    provider = FakeEmbeddingProvider(failures=[ValueError("bad payload")])
    embedder = make_embedder(provider, max_retries=0)

    with pytest.raises(ProviderError):
        asyncio.run(embedder.generate_embedding("hello"))


def test_timeout_raises_provider_error():
    provider = FakeEmbeddingProvider(delay=0.5)
    embedder = make_embedder(provider, max_retries=0, timeout=0.01)

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(embedder.generate_embedding("hello"))

    assert "timed out" in str(exc_info.value)
    assert embedder.rate_limiter.tokens_used == 0


def test_wrong_dimensions_raise():
    provider = FakeEmbeddingProvider(vectors={"hello": [1.0, 0.0]})
    embedder = make_embedder(provider, max_retries=0)

    with pytest.raises(ProviderError):
        asyncio.run(embedder.generate_embedding("hello"))


def test_batch_degrades_failures_to_zero_vectors():
    provider = FakeEmbeddingProvider(
        vectors={"a": [0.0, 1.0, 0.0, 0.0], "c": [0.0, 0.0, 1.0, 0.0]},
        failing_texts={"b"},
    )
    embedder = make_embedder(provider, max_retries=1)

    vectors = asyncio.run(embedder.generate_embedding_batch(["a", "b", "c"]))

    assert len(vectors) == 3
    assert vectors[0] == [0.0, 1.0, 0.0, 0.0]
    assert vectors[1] == [0.0] * DIMENSIONS
    assert vectors[2] == [0.0, 0.0, 1.0, 0.0]
    assert provider.calls.count("b") == 2


def test_batch_of_nothing():
    assert asyncio.run(make_embedder().generate_embedding_batch([])) == []


def test_initialize_surfaces_missing_credentials():
    embedder = Embedder(FakeEmbeddingProvider(has_credentials=False), TokenRateLimiter(1000))
    with pytest.raises(ConfigurationError):
        asyncio.run(embedder.initialize())


def test_health_follows_provider():
    healthy = asyncio.run(make_embedder(FakeEmbeddingProvider()).check_health())
    unhealthy = asyncio.run(make_embedder(FakeEmbeddingProvider(healthy=False)).check_health())

    assert healthy.status.value == "healthy"
    assert unhealthy.status.value == "unhealthy"


def _openai_client(embedding=None, error=None):
    client = MagicMock()
    if error is not None:
        client.embeddings.create = AsyncMock(side_effect=error)
    else:
        response = SimpleNamespace(
            data=[SimpleNamespace(embedding=embedding)],
            usage=SimpleNamespace(total_tokens=3),
        )
        client.embeddings.create = AsyncMock(return_value=response)
    return client


def test_openai_provider_embed():
    client = _openai_client(embedding=[0.5, 0.5])
    provider = OpenAIEmbeddingProvider(model="text-embedding-3-small", dimensions=2, client=client)

    response = asyncio.run(provider.embed("late checkout"))

    assert response.embedding == [0.5, 0.5]
    assert response.total_tokens == 3
    client.embeddings.create.assert_awaited_once_with(
        model="text-embedding-3-small", input="late checkout", dimensions=2
    )


def test_openai_rate_limit_maps_to_provider_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    error = openai.RateLimitError("Rate limit reached", response=httpx.Response(429, request=request), body=None)
    provider = OpenAIEmbeddingProvider(dimensions=2, client=_openai_client(error=error))

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(provider.embed("hello"))
    assert exc_info.value.status_code == 429


def test_openai_provider_without_key():
    provider = OpenAIEmbeddingProvider(api_key=None)
    with patch("chatrag.config.OPENAI_API_KEY", None):
        with pytest.raises(ConfigurationError):
            asyncio.run(provider.initialize())


def test_provider_registry():
    assert isinstance(get_embedding_provider("openai"), OpenAIEmbeddingProvider)
    with pytest.raises(ConfigurationError):
        get_embedding_provider("word2vec")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
