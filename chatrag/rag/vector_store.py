"""
Vector store client interface and backend registry.

Concrete backends implement blocking ``_``-prefixed hooks against their
client library. The public coroutines run those hooks in a worker thread
with a bounded timeout and convert every failure into a logged empty
result or failure flag, so a storage outage degrades retrieval instead of
breaking the conversation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from chatrag import config
from chatrag.models.knowledge import Document, HealthReport, HealthStatus, QueryResult, StoreResult
from chatrag.rag.exceptions import ConfigurationError, StoreError

logger = logging.getLogger(__name__)


class VectorStoreBackend(str, Enum):
    """Supported similarity-search backends."""
    CHROMA = "chroma"
    SUPABASE = "supabase"


class VectorStore(ABC):
    """Contract for all vector store backends."""

    backend: VectorStoreBackend

    def __init__(self, timeout: float = config.VECTOR_STORE_TIMEOUT_SECONDS):
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Backend hooks (blocking, executed in a worker thread)
    # ------------------------------------------------------------------

    @abstractmethod
    def _connect(self) -> None:
        """Build the client and make sure tables/collections exist.

        Raises:
            ConfigurationError: If credentials are missing.
        """
        raise NotImplementedError

    @abstractmethod
    def _insert_document(self, title: str, content: str, metadata: Dict[str, Any]) -> str:
        raise NotImplementedError

    @abstractmethod
    def _insert_chunk(
        self, content: str, vector: List[float], document_id: str, metadata: Dict[str, Any]
    ) -> str:
        raise NotImplementedError

    @abstractmethod
    def _match(self, query_vector: List[float], limit: int, threshold: float) -> List[QueryResult]:
        """Nearest-neighbour query delegated to the backend service."""
        raise NotImplementedError

    @abstractmethod
    def _select_document(self, document_id: str) -> Optional[Document]:
        raise NotImplementedError

    @abstractmethod
    def _delete_document(self, document_id: str) -> bool:
        """Delete a document and all of its chunks."""
        raise NotImplementedError

    @abstractmethod
    def _ping(self) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreError(f"{operation} timed out after {self.timeout}s", operation=operation) from e
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(str(e), operation=operation) from e

    async def initialize(self) -> None:
        """Connect to the backend.

        Raises:
            ConfigurationError: If credentials are missing.
            StoreError: If the backend cannot be reached.
        """
        try:
            await self._call("initialize", self._connect)
        except StoreError as e:
            if isinstance(e.__cause__, ConfigurationError):
                raise e.__cause__
            raise
        logger.info(f"[VECTOR_STORE] Vector store initialized ({self.backend.value})")

    async def add_document(
        self, title: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> StoreResult:
        try:
            document_id = await self._call("add_document", self._insert_document, title, content, metadata or {})
        except StoreError as e:
            logger.error(f"[VECTOR_STORE] Failed to add document: {e}")
            return StoreResult(success=False, error=str(e))

        logger.info(f"[VECTOR_STORE] Added knowledge base entry with ID: {document_id}")
        return StoreResult(success=True, id=document_id)

    async def store_embedding(
        self,
        chunk_content: str,
        vector: List[float],
        document_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoreResult:
        try:
            chunk_id = await self._call(
                "store_embedding", self._insert_chunk, chunk_content, vector, document_id, metadata or {}
            )
        except StoreError as e:
            logger.error(f"[VECTOR_STORE] Failed to store embedding: {e}")
            return StoreResult(success=False, error=str(e))

        logger.debug(f"[VECTOR_STORE] Stored embedding for chunk with ID: {chunk_id}")
        return StoreResult(success=True, id=chunk_id)

    async def similarity_search(
        self,
        query_vector: List[float],
        limit: int = config.RAG_MAX_RESULTS,
        threshold: float = config.RAG_SIMILARITY_THRESHOLD,
    ) -> List[QueryResult]:
        """Find stored chunks similar to ``query_vector``.

        Returns:
            At most ``limit`` results with similarity >= ``threshold``, in
            descending similarity order. Empty on any store failure.
        """
        if limit <= 0:
            return []

        try:
            rows = await self._call("similarity_search", self._match, query_vector, limit, threshold)
        except StoreError as e:
            logger.error(f"[VECTOR_STORE] Vector similarity search failed: {e}")
            return []

        results = sorted(
            (r for r in rows if r.similarity >= threshold),
            key=lambda r: r.similarity,
            reverse=True,
        )[:limit]

        if not results:
            logger.debug("[VECTOR_STORE] No similar chunks found in vector store")
        else:
            logger.debug(f"[VECTOR_STORE] Found {len(results)} similar chunks in vector store")
        return results

    async def get_document(self, document_id: str) -> Optional[Document]:
        try:
            return await self._call("get_document", self._select_document, document_id)
        except StoreError as e:
            logger.error(f"[VECTOR_STORE] Failed to fetch document {document_id}: {e}")
            return None

    async def delete_document(self, document_id: str) -> bool:
        try:
            deleted = await self._call("delete_document", self._delete_document, document_id)
        except StoreError as e:
            logger.error(f"[VECTOR_STORE] Failed to delete document {document_id}: {e}")
            return False

        if deleted:
            logger.info(f"[VECTOR_STORE] Deleted knowledge base entry {document_id} and its chunks")
        return deleted

    async def check_health(self) -> HealthReport:
        try:
            await self._call("check_health", self._ping)
        except StoreError as e:
            return HealthReport(HealthStatus.UNHEALTHY, f"Vector store error: {e}")
        return HealthReport(HealthStatus.HEALTHY, "Vector store is operational")


def get_vector_store(backend: Union[VectorStoreBackend, str] = config.VECTOR_STORE_BACKEND, **kwargs) -> VectorStore:
    """Instantiate the vector store registered for ``backend``."""
    from .chroma_store import ChromaVectorStore
    from .supabase_store import SupabaseVectorStore

    backends = {
        VectorStoreBackend.CHROMA: ChromaVectorStore,
        VectorStoreBackend.SUPABASE: SupabaseVectorStore,
    }

    try:
        key = VectorStoreBackend(backend)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported vector store backend: {backend}. "
            f"Must be one of {[b.value for b in VectorStoreBackend]}."
        )
    return backends[key](**kwargs)
