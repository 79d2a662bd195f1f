"""
Knowledge base orchestration: ingestion and single-query search.

Ingestion stores the document, chunks its content, then embeds and stores
every chunk concurrently. A failing chunk is counted rather than aborting
the document, so the result reports partial success.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from chatrag import config
from chatrag.models.knowledge import Chunk, Document, HealthReport, HealthStatus, IngestionResult, QueryResult
from chatrag.rag.chunker import ChunkConfig, create_chunks_with_metadata
from chatrag.rag.embedder import Embedder
from chatrag.rag.exceptions import ProviderError, RAGError, ValidationError
from chatrag.rag.vector_store import VectorStore

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset([
    # Japanese particles
    "は", "を", "に", "で", "と", "が", "の", "や", "へ", "から", "より", "とは",
    # English function words
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "with", "by", "from",
    "of", "is", "are", "was", "what", "how", "it", "this", "that",
])

_PUNCTUATION = re.compile(r"[.,!?;:()\[\]{}\"'、。！？「」（）]")


def extract_keywords(text: str) -> List[str]:
    """Extract search keywords from text.

    Lowercases, strips punctuation, splits on whitespace and drops stop
    words and single characters. Duplicates are removed, keeping the
    first occurrence so callers can rely on keyword order.
    """
    if not text:
        return []

    words = _PUNCTUATION.sub(" ", text.lower()).split()
    keywords = []
    seen = set()
    for word in words:
        if len(word) <= 1 or word in STOP_WORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
    return keywords


class KnowledgeBase:
    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Embedder,
        chunk_config: Optional[ChunkConfig] = None,
    ):
        self.vector_store = vector_store
        self.embedder = embedder
        self.chunk_config = chunk_config

    async def initialize(self) -> None:
        """Initialize the vector store, then the embedder.

        Raises:
            ConfigurationError: If either component is missing credentials.
        """
        await self.vector_store.initialize()
        await self.embedder.initialize()
        logger.info("[KNOWLEDGE_BASE] Knowledge base system initialized successfully")

    async def add_document(
        self,
        title: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        chunk_options: Optional[ChunkConfig] = None,
    ) -> IngestionResult:
        """Ingest a document: store it, chunk it, embed and store every chunk.

        Args:
            title: Document title.
            content: Raw document text.
            metadata: Metadata inherited by every chunk.
            chunk_options: Chunking options for this document.

        Returns:
            IngestionResult with per-chunk success counts. Never raises.
        """
        metadata = dict(metadata or {})
        try:
            if not title or not title.strip():
                raise ValidationError("Document title must not be empty")
            if not content or not content.strip():
                raise ValidationError("Document content must not be empty")

            logger.info(f"[KNOWLEDGE_BASE] Adding document to knowledge base: \"{title}\" ({len(content)} chars)")

            stored = await self.vector_store.add_document(title, content, metadata)
            if not stored.success:
                return IngestionResult(success=False, error=f"Failed to add document to knowledge base: {stored.error}")

            document_id = stored.id
            chunks = create_chunks_with_metadata(
                content,
                {**metadata, "title": title, "document_id": document_id},
                chunk_options or self.chunk_config,
                document_id=document_id,
            )
            logger.debug(f"[KNOWLEDGE_BASE] Document split into {len(chunks)} chunks for processing")

            outcomes = await asyncio.gather(
                *(self._ingest_chunk(chunk, document_id) for chunk in chunks),
                return_exceptions=True,
            )
        except ValidationError as e:
            logger.warning(f"[KNOWLEDGE_BASE] Rejected document: {e}")
            return IngestionResult(success=False, error=str(e))
        except Exception as e:
            logger.error(f"[KNOWLEDGE_BASE] Error adding document to knowledge base: {e}")
            return IngestionResult(success=False, error=str(e))

        successful = 0
        for chunk, outcome in zip(chunks, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    f"[KNOWLEDGE_BASE] Unexpected error for chunk {chunk.chunk_index} of {document_id}: {outcome}"
                )
            elif outcome:
                successful += 1
        failed = len(outcomes) - successful
        logger.info(f"[KNOWLEDGE_BASE] Document \"{title}\" processed: {successful} chunks added, {failed} failed")

        return IngestionResult(
            success=successful > 0,
            document_id=document_id,
            total_chunks=len(chunks),
            successful_chunks=successful,
            failed_chunks=failed,
        )

    async def _ingest_chunk(self, chunk: Chunk, document_id: str) -> bool:
        try:
            vector = await self.embedder.generate_embedding(chunk.content)
        except RAGError as e:
            logger.error(f"[KNOWLEDGE_BASE] Embedding failed for chunk {chunk.chunk_index} of {document_id}: {e}")
            return False

        result = await self.vector_store.store_embedding(chunk.content, vector, document_id, chunk.metadata)
        return result.success

    async def search_knowledge(
        self,
        query: str,
        max_results: int = config.RAG_MAX_RESULTS,
        similarity_threshold: float = config.RAG_SIMILARITY_THRESHOLD,
    ) -> List[QueryResult]:
        """Embed ``query`` and return the most similar stored chunks.

        A blank query returns an empty list without calling the embedder.
        Embedding failures are logged and also yield an empty list.
        """
        processed_query = (query or "").strip()
        if not processed_query:
            logger.warning("[KNOWLEDGE_BASE] Empty query provided for knowledge search")
            return []

        try:
            query_vector = await self.embedder.generate_embedding(processed_query)
        except ProviderError as e:
            logger.error(f"[KNOWLEDGE_BASE] Knowledge search failed: {e}")
            return []

        results = await self.vector_store.similarity_search(query_vector, max_results, similarity_threshold)
        logger.debug(
            f"[KNOWLEDGE_BASE] Knowledge search for \"{processed_query[:30]}...\" returned {len(results)} results"
        )
        return results

    def extract_keywords(self, text: str) -> List[str]:
        return extract_keywords(text)

    async def get_document(self, document_id: str) -> Optional[Document]:
        return await self.vector_store.get_document(document_id)

    async def delete_document(self, document_id: str) -> bool:
        return await self.vector_store.delete_document(document_id)

    async def check_health(self) -> HealthReport:
        """Aggregate vector store and embedder health.

        Both healthy is healthy, both unhealthy is unhealthy, anything else is degraded.
        """
        try:
            vector_store_health, embeddings_health = await asyncio.gather(
                self.vector_store.check_health(),
                self.embedder.check_health(),
            )
        except Exception as e:
            return HealthReport(HealthStatus.UNHEALTHY, f"Knowledge base error: {e}")

        components = {"vector_store": vector_store_health, "embeddings": embeddings_health}
        statuses = {vector_store_health.status, embeddings_health.status}

        if statuses == {HealthStatus.HEALTHY}:
            return HealthReport(HealthStatus.HEALTHY, "Knowledge base system is operational", components)
        if statuses == {HealthStatus.UNHEALTHY}:
            return HealthReport(HealthStatus.UNHEALTHY, "Knowledge base system is not operational", components)
        return HealthReport(HealthStatus.DEGRADED, "Knowledge base system is partially operational", components)
