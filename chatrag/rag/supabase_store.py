"""
Supabase (pgvector) backend for the vector store client.

Documents go to the knowledge table, chunks with their embeddings to the
chunks table, and similarity search runs server-side through the
match_chunks RPC (see migrations/knowledge_base.sql).
"""

import logging
from typing import Any, Dict, List, Optional

from chatrag import config
from chatrag.models.knowledge import Document, QueryResult, utc_now_iso
from chatrag.rag.exceptions import ConfigurationError, StoreError
from chatrag.rag.vector_store import VectorStore, VectorStoreBackend

logger = logging.getLogger(__name__)


class SupabaseVectorStore(VectorStore):
    backend = VectorStoreBackend.SUPABASE

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        knowledge_table: str = config.SUPABASE_KNOWLEDGE_TABLE,
        chunks_table: str = config.SUPABASE_CHUNKS_TABLE,
        match_function: str = config.SUPABASE_MATCH_FUNCTION,
        client=None,
        timeout: float = config.VECTOR_STORE_TIMEOUT_SECONDS,
    ):
        super().__init__(timeout=timeout)
        self.url = url
        self.key = key
        self.knowledge_table = knowledge_table
        self.chunks_table = chunks_table
        self.match_function = match_function
        self._client = client

    def _get_client(self):
        if self._client is None:
            url = self.url or config.SUPABASE_URL
            key = self.key or config.SUPABASE_KEY
            if not url or not key:
                raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

            from supabase import create_client

            self._client = create_client(url, key)
            logger.info("[VECTOR_STORE] Supabase client initialized")
        return self._client

    def _connect(self) -> None:
        self._get_client()

    def _insert_document(self, title: str, content: str, metadata: Dict[str, Any]) -> str:
        result = (
            self._get_client()
            .table(self.knowledge_table)
            .insert({"title": title, "content": content, "metadata": metadata, "updated_at": utc_now_iso()})
            .execute()
        )
        if not result.data:
            raise StoreError("Document insert returned no data", operation="add_document")
        return result.data[0]["id"]

    def _insert_chunk(
        self, content: str, vector: List[float], document_id: str, metadata: Dict[str, Any]
    ) -> str:
        result = (
            self._get_client()
            .table(self.chunks_table)
            .insert({"knowledge_id": document_id, "content": content, "embedding": vector, "metadata": metadata})
            .execute()
        )
        if not result.data:
            raise StoreError("Chunk insert returned no data", operation="store_embedding")
        return result.data[0]["id"]

    def _match(self, query_vector: List[float], limit: int, threshold: float) -> List[QueryResult]:
        result = (
            self._get_client()
            .rpc(
                self.match_function,
                {"query_embedding": query_vector, "match_threshold": threshold, "match_count": limit},
            )
            .execute()
        )

        return [
            QueryResult(
                content=row["content"],
                document_id=row.get("knowledge_id"),
                similarity=float(row["similarity"]),
                metadata=row.get("metadata") or {},
                chunk_id=row.get("id"),
            )
            for row in (result.data or [])
        ]

    def _select_document(self, document_id: str) -> Optional[Document]:
        result = (
            self._get_client()
            .table(self.knowledge_table)
            .select("*")
            .eq("id", document_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        return Document(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            metadata=row.get("metadata") or {},
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _delete_document(self, document_id: str) -> bool:
        client = self._get_client()
        # Chunks cascade in the schema, but older tables may lack the foreign key
        client.table(self.chunks_table).delete().eq("knowledge_id", document_id).execute()
        result = client.table(self.knowledge_table).delete().eq("id", document_id).execute()
        return bool(result.data)

    def _ping(self) -> None:
        self._get_client().table(self.knowledge_table).select("id").limit(1).execute()
