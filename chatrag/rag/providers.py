"""Embedding provider interface and registry.

Every provider implements ``EmbeddingProvider``. The concrete class is
resolved once at startup from the configured ``EmbeddingProviderType``.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Type, Union

import openai
from openai import AsyncOpenAI

from chatrag import config
from chatrag.models.knowledge import HealthReport, HealthStatus
from chatrag.rag.exceptions import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""
    OPENAI = "openai"


@dataclass
class EmbeddingResponse:
    embedding: List[float]
    total_tokens: Optional[int] = None


class EmbeddingProvider(ABC):
    """Contract for all embedding providers."""

    model: str
    dimensions: int

    @abstractmethod
    async def initialize(self) -> None:
        """Resolve credentials and build the client.

        Raises:
            ConfigurationError: If credentials are missing.
        """
        raise NotImplementedError

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingResponse:
        """Embed a single text.

        Raises:
            ProviderError: On any provider failure, with the HTTP status when known.
        """
        raise NotImplementedError

    @abstractmethod
    async def check_health(self) -> HealthReport:
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings API (``text-embedding-3-*``)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = config.EMBEDDING_MODEL,
        dimensions: int = config.EMBEDDING_DIMENSIONS,
        timeout: float = config.EMBEDDING_TIMEOUT_SECONDS,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is not None:
            return self._client

        api_key = self.api_key or config.OPENAI_API_KEY
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY not found in environment or chatrag.config")

        # Retries are handled by the Embedder so the rate limiter sees every attempt
        self._client = AsyncOpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)
        logger.info(f"[EMBEDDER] OpenAI embeddings client initialized ({self.model}, {self.dimensions}d)")
        return self._client

    async def initialize(self) -> None:
        self._get_client()

    async def embed(self, text: str) -> EmbeddingResponse:
        client = self._get_client()
        try:
            response = await client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions,
            )
        except openai.APIStatusError as e:
            raise ProviderError(f"OpenAI embeddings request failed: {e.message}", status_code=e.status_code) from e
        except openai.APITimeoutError as e:
            raise ProviderError("OpenAI embeddings request timed out") from e
        except openai.APIError as e:
            raise ProviderError(f"OpenAI embeddings request failed: {e}") from e

        if not response.data:
            raise ProviderError("OpenAI embedding returned no data")

        usage = getattr(response, "usage", None)
        return EmbeddingResponse(
            embedding=response.data[0].embedding,
            total_tokens=usage.total_tokens if usage else None,
        )

    async def check_health(self) -> HealthReport:
        try:
            result = await self.embed("test")
        except Exception as e:
            return HealthReport(HealthStatus.UNHEALTHY, f"Embeddings error: {e}")

        if len(result.embedding) != self.dimensions:
            return HealthReport(HealthStatus.UNHEALTHY, "Embeddings response format is incorrect")
        return HealthReport(HealthStatus.HEALTHY, "Embeddings provider is operational")


_PROVIDERS: Dict[EmbeddingProviderType, Type[EmbeddingProvider]] = {
    EmbeddingProviderType.OPENAI: OpenAIEmbeddingProvider,
}


def get_embedding_provider(
    provider_type: Union[EmbeddingProviderType, str] = config.EMBEDDING_PROVIDER,
    **kwargs,
) -> EmbeddingProvider:
    """Instantiate the provider registered for ``provider_type``."""
    try:
        key = EmbeddingProviderType(provider_type)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported embedding provider: {provider_type}. "
            f"Must be one of {[p.value for p in EmbeddingProviderType]}."
        )
    return _PROVIDERS[key](**kwargs)
