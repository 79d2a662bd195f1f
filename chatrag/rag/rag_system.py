"""
Entry point of the RAG subsystem for the rest of the assistant.

Builds the embedder, vector store, knowledge base and query engine from
configuration once at startup, keeps a periodic health check running, and
exposes ingestion, retrieval and health to the message handling layer.
Retrieval never raises: when the system is disabled, not initialized or
failing, callers get an empty context and answer without it.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from chatrag import config
from chatrag.models.knowledge import ContextBundle, Document, HealthReport, HealthStatus, IngestionResult
from chatrag.rag.chunker import ChunkConfig
from chatrag.rag.embedder import Embedder
from chatrag.rag.exceptions import ConfigurationError
from chatrag.rag.knowledge_base import KnowledgeBase
from chatrag.rag.providers import get_embedding_provider
from chatrag.rag.query_engine import QueryEngine, SearchOptions
from chatrag.rag.rate_limiter import TokenRateLimiter
from chatrag.rag.vector_store import get_vector_store

logger = logging.getLogger(__name__)


def build_query_engine() -> QueryEngine:
    """Resolve the configured provider and vector store and wire the pipeline."""
    provider = get_embedding_provider(config.EMBEDDING_PROVIDER)
    embedder = Embedder(provider, TokenRateLimiter(config.EMBEDDING_MAX_TOKENS_PER_MINUTE))
    vector_store = get_vector_store(config.VECTOR_STORE_BACKEND)
    return QueryEngine(KnowledgeBase(vector_store, embedder))


class RAGSystem:
    """Lifecycle and facade for the RAG pipeline.

    Args:
        query_engine: Pre-built pipeline. Built from configuration on initialize() when omitted.
        enabled: Master switch (RAG_ENABLED).
        health_check_interval: Seconds between background health checks; 0 disables them.
    """

    def __init__(
        self,
        query_engine: Optional[QueryEngine] = None,
        enabled: bool = config.RAG_ENABLED,
        health_check_interval: float = config.RAG_HEALTH_CHECK_INTERVAL,
    ):
        self.query_engine = query_engine
        self.enabled = enabled
        self.health_check_interval = health_check_interval
        self.initialized = False
        self.health_status: str = "unknown"
        self.last_health_check: Optional[str] = None
        self._health_task: Optional[asyncio.Task] = None

    @property
    def knowledge_base(self) -> Optional[KnowledgeBase]:
        return self.query_engine.knowledge_base if self.query_engine else None

    @property
    def ready(self) -> bool:
        return self.enabled and self.initialized

    async def initialize(self) -> Dict[str, Any]:
        """Initialize all components and run a first health check.

        Returns:
            Dict with "status" of "initialized", "already_initialized",
            "disabled" or "error" (with the error message). Configuration
            errors surface here instead of on individual queries.
        """
        if self.initialized:
            logger.debug("[RAG] RAG system already initialized")
            return {"status": "already_initialized"}

        if not self.enabled:
            logger.info("[RAG] RAG system is disabled in configuration")
            return {"status": "disabled"}

        try:
            logger.info("[RAG] Initializing RAG system...")
            if self.query_engine is None:
                self.query_engine = build_query_engine()
            await self.query_engine.knowledge_base.initialize()

            health = await self.check_health()
            self._record_health(health)
            self._start_health_checks()

            self.initialized = True
            logger.info(f"[RAG] RAG system initialized with status: {self.health_status}")
            return {"status": "initialized", "health_status": self.health_status}
        except ConfigurationError as e:
            logger.error(f"[RAG] RAG system configuration error: {e}")
            self.health_status = "failed"
            return {"status": "error", "error": str(e)}
        except Exception as e:
            logger.exception(f"[RAG] Failed to initialize RAG system: {e}")
            self.health_status = "failed"
            return {"status": "error", "error": str(e)}

    def _record_health(self, health: HealthReport) -> None:
        self.health_status = health.status.value
        self.last_health_check = health.timestamp

    def _start_health_checks(self) -> None:
        if self._health_task is not None:
            self._health_task.cancel()
        if self.health_check_interval > 0:
            self._health_task = asyncio.create_task(self._health_check_loop())

    async def _health_check_loop(self) -> None:
        while True:
            await asyncio.sleep(self.health_check_interval)
            try:
                self._record_health(await self.check_health())
                logger.debug(f"[RAG] RAG system periodic health check: {self.health_status}")
            except Exception as e:
                logger.error(f"[RAG] RAG system health check failed: {e}")
                self.health_status = "error"

    async def shutdown(self) -> None:
        if self._health_task is not None:
            self._health_task.cancel()
            try:
                await self._health_task
            except asyncio.CancelledError:
                pass
            self._health_task = None
        self.initialized = False

    async def process_message(self, message: str, options: Optional[SearchOptions] = None) -> ContextBundle:
        """Retrieve context for a user message. Empty when the system is not ready."""
        if not self.ready:
            return ContextBundle()

        bundle = await self.query_engine.search(message, options)
        logger.debug(f"[RAG] RAG process complete: {len(bundle.results)} results found")
        return bundle

    search = process_message

    async def generate_context_for_prompt(self, message: str, options: Optional[SearchOptions] = None) -> str:
        bundle = await self.process_message(message, options)
        return bundle.context

    async def add_document(
        self,
        title: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        chunk_options: Optional[ChunkConfig] = None,
    ) -> IngestionResult:
        if not self.ready:
            return IngestionResult(success=False, error="RAG system is not enabled or initialized")
        return await self.knowledge_base.add_document(title, content, metadata, chunk_options)

    async def get_document(self, document_id: str) -> Optional[Document]:
        if not self.ready:
            return None
        return await self.knowledge_base.get_document(document_id)

    async def delete_document(self, document_id: str) -> bool:
        if not self.ready:
            return False
        return await self.knowledge_base.delete_document(document_id)

    async def check_health(self) -> HealthReport:
        if self.query_engine is None:
            return HealthReport(HealthStatus.UNHEALTHY, "RAG system is not initialized")

        qe_health = await self.query_engine.check_health()
        return HealthReport(
            qe_health.status,
            f"RAG system is {qe_health.status.value}",
            {"query_engine": qe_health},
        )


_rag_system: Optional[RAGSystem] = None


def get_rag_system() -> RAGSystem:
    """Return the process-wide RAG system, creating it on first use."""
    global _rag_system
    if _rag_system is None:
        _rag_system = RAGSystem()
    return _rag_system


if __name__ == "__main__":
    # Standalone health check against the configured services
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    async def _main():
        rag = RAGSystem(enabled=True, health_check_interval=0)
        print(await rag.initialize())
        print((await rag.check_health()).to_dict())
        await rag.shutdown()

    asyncio.run(_main())
