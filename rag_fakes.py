"""
In-memory stand-ins for the embedding provider and vector store, shared by the test scripts.
"""
import asyncio
import math
import uuid
from typing import Any, Dict, List, Optional

from chatrag.models.knowledge import Document, HealthReport, HealthStatus, QueryResult, utc_now_iso
from chatrag.rag.embedder import Embedder
from chatrag.rag.exceptions import ConfigurationError, ProviderError
from chatrag.rag.knowledge_base import KnowledgeBase
from chatrag.rag.providers import EmbeddingProvider, EmbeddingResponse
from chatrag.rag.rate_limiter import TokenRateLimiter
from chatrag.rag.vector_store import VectorStore, VectorStoreBackend

DIMENSIONS = 4


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic provider. ``failures`` are raised in order before any success;
    texts listed in ``failing_texts`` always fail, and ``errors`` maps a text to the
    exception it raises."""

    def __init__(self, vectors=None, dimensions=DIMENSIONS, failures=None, failing_texts=None,
                 has_credentials=True, delay=0.0, healthy=True, errors=None):
        self.model = "fake-embedding"
        self.dimensions = dimensions
        self.vectors = vectors or {}
        self.failures = list(failures or [])
        self.failing_texts = set(failing_texts or [])
        self.errors = dict(errors or {})
        self.has_credentials = has_credentials
        self.delay = delay
        self.healthy = healthy
        self.calls: List[str] = []

    async def initialize(self) -> None:
        if not self.has_credentials:
            raise ConfigurationError("FAKE_API_KEY not set")

    async def embed(self, text: str) -> EmbeddingResponse:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        if text in self.errors:
            raise self.errors[text]
        if text in self.failing_texts:
            raise ProviderError("server error", status_code=500)
        vector = self.vectors.get(text, [1.0] + [0.0] * (self.dimensions - 1))
        return EmbeddingResponse(embedding=list(vector), total_tokens=max(1, len(text) // 4))

    async def check_health(self) -> HealthReport:
        if self.healthy:
            return HealthReport(HealthStatus.HEALTHY, "fake provider ok")
        return HealthReport(HealthStatus.UNHEALTHY, "fake provider down")


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorStore(VectorStore):
    """Vector store backed by dicts. ``fail_on`` names hooks that raise;
    ``preset_matches`` replaces the cosine search with fixed rows."""

    backend = VectorStoreBackend.CHROMA

    def __init__(self, fail_on=None, preset_matches: Optional[List[QueryResult]] = None, timeout: float = 5.0):
        super().__init__(timeout=timeout)
        self.fail_on = set(fail_on or [])
        self.preset_matches = preset_matches
        self.documents: Dict[str, Document] = {}
        self.chunks: Dict[str, Dict[str, Any]] = {}
        self.connected = False

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise RuntimeError(f"{name} unavailable")

    def _connect(self) -> None:
        self._maybe_fail("connect")
        self.connected = True

    def _insert_document(self, title, content, metadata) -> str:
        self._maybe_fail("insert_document")
        document_id = str(uuid.uuid4())
        now = utc_now_iso()
        self.documents[document_id] = Document(document_id, title, content, dict(metadata), now, now)
        return document_id

    def _insert_chunk(self, content, vector, document_id, metadata) -> str:
        self._maybe_fail("insert_chunk")
        chunk_id = str(uuid.uuid4())
        self.chunks[chunk_id] = {
            "content": content, "vector": vector, "document_id": document_id, "metadata": dict(metadata),
        }
        return chunk_id

    def _match(self, query_vector, limit, threshold) -> List[QueryResult]:
        self._maybe_fail("match")
        if self.preset_matches is not None:
            return list(self.preset_matches)
        scored = [
            QueryResult(
                content=c["content"],
                document_id=c["document_id"],
                similarity=_cosine(query_vector, c["vector"]),
                metadata=c["metadata"],
                chunk_id=chunk_id,
            )
            for chunk_id, c in self.chunks.items()
        ]
        return sorted(scored, key=lambda r: r.similarity, reverse=True)[:limit]

    def _select_document(self, document_id):
        self._maybe_fail("select_document")
        return self.documents.get(document_id)

    def _delete_document(self, document_id) -> bool:
        self._maybe_fail("delete_document")
        self.chunks = {k: v for k, v in self.chunks.items() if v["document_id"] != document_id}
        return self.documents.pop(document_id, None) is not None

    def _ping(self) -> None:
        self._maybe_fail("ping")


def make_embedder(provider=None, max_retries=0, **kwargs) -> Embedder:
    provider = provider or FakeEmbeddingProvider()
    return Embedder(provider, TokenRateLimiter(100000), max_retries=max_retries, retry_delay=0, **kwargs)


def make_knowledge_base(provider=None, store=None, **embedder_kwargs):
    provider = provider or FakeEmbeddingProvider()
    store = store or InMemoryVectorStore()
    return KnowledgeBase(store, make_embedder(provider, **embedder_kwargs)), provider, store
