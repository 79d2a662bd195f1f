"""
Embedder module for generating embeddings through the configured provider.

Wraps an ``EmbeddingProvider`` with the cross-cutting concerns every call
needs: the rolling token budget, a bounded timeout, retries with a delay
that grows with the attempt number, and dimensionality checks.
Single embeddings propagate a ProviderError once retries are exhausted;
batch embeddings degrade failing items to zero vectors.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from chatrag import config
from chatrag.models.knowledge import HealthReport, HealthStatus
from chatrag.rag.exceptions import ConfigurationError, ProviderError
from chatrag.rag.providers import EmbeddingProvider
from chatrag.rag.rate_limiter import TokenRateLimiter

logger = logging.getLogger(__name__)


class Embedder:
    """Turns text into fixed-dimension vectors.

    Args:
        provider: Embedding provider implementation.
        rate_limiter: Token budget shared by all calls of this embedder.
        dimensions: Expected vector length. Defaults to the provider's.
        max_retries: Retries after the initial attempt.
        retry_delay: Base delay in seconds; attempt n waits n * retry_delay.
        timeout: Per-call timeout in seconds.
        sleep: Coroutine used to wait between retries.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        rate_limiter: Optional[TokenRateLimiter] = None,
        dimensions: Optional[int] = None,
        max_retries: int = config.EMBEDDING_MAX_RETRIES,
        retry_delay: float = config.EMBEDDING_RETRY_DELAY_SECONDS,
        timeout: float = config.EMBEDDING_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter or TokenRateLimiter()
        self.dimensions = dimensions or provider.dimensions
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep

    def zero_vector(self) -> List[float]:
        return [0.0] * self.dimensions

    async def initialize(self) -> None:
        """Resolve provider credentials.

        Raises:
            ConfigurationError: If the provider has no credentials.
        """
        await self.provider.initialize()
        logger.info(f"[EMBEDDER] Embedder initialized ({self.provider.model}, {self.dimensions}d)")

    async def _embed_once(self, text: str) -> List[float]:
        estimated = await self.rate_limiter.acquire(text)
        try:
            response = await asyncio.wait_for(self.provider.embed(text), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.rate_limiter.release(estimated)
            raise ProviderError(f"Embedding request timed out after {self.timeout}s")
        except Exception:
            self.rate_limiter.release(estimated)
            raise

        self.rate_limiter.record_usage(response.total_tokens, estimated)

        if len(response.embedding) != self.dimensions:
            raise ProviderError(
                f"Embedding has {len(response.embedding)} dimensions, expected {self.dimensions}"
            )
        return response.embedding

    async def generate_embedding(self, text: str) -> List[float]:
        """Generate an embedding for a single text.

        Blank text yields a zero vector without calling the provider.

        Raises:
            ProviderError: After the initial attempt plus max_retries retries all fail.
            ConfigurationError: If provider credentials are missing.
        """
        if not text or not text.strip():
            logger.warning("[EMBEDDER] Empty text provided for embedding generation")
            return self.zero_vector()

        text = text.strip()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
                retry=retry_if_not_exception_type(ConfigurationError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    embedding = await self._embed_once(text)
        except (ProviderError, ConfigurationError) as e:
            logger.error(f"[EMBEDDER] Failed to generate embedding after {self.max_retries} retries: {e}")
            raise
        except Exception as e:
            logger.error(f"[EMBEDDER] Failed to generate embedding after {self.max_retries} retries: {e}")
            raise ProviderError(str(e), status_code=getattr(e, "status_code", None)) from e

        logger.debug(f"[EMBEDDER] Generated embedding for text ({len(text)} chars)")
        return embedding

    async def generate_embedding_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for many texts concurrently.

        Returns:
            One vector per input, in input order. Items that fail are zero vectors.
        """
        if not texts:
            return []

        results = await asyncio.gather(
            *(self.generate_embedding(text) for text in texts),
            return_exceptions=True,
        )

        embeddings = []
        failures = 0
        for result in results:
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures += 1
                logger.error(f"[EMBEDDER] Failed to generate embedding for batch item: {result}")
                embeddings.append(self.zero_vector())
            else:
                embeddings.append(result)

        logger.debug(f"[EMBEDDER] Generated {len(embeddings)} embeddings in batch ({failures} failed)")
        return embeddings

    async def check_health(self) -> HealthReport:
        try:
            return await asyncio.wait_for(self.provider.check_health(), timeout=self.timeout)
        except Exception as e:
            return HealthReport(HealthStatus.UNHEALTHY, f"Embeddings error: {e}")

    @property
    def usage(self) -> Dict[str, Optional[float]]:
        return {
            "tokens_used": self.rate_limiter.tokens_used,
            "reset_time": self.rate_limiter.reset_time,
            "total_tokens": self.rate_limiter.total_tokens,
        }
