"""
ChromaDB backend for the vector store client.

Chunk vectors live in a ChromaDB collection using cosine distance; the
documents they belong to live in a SQLite table (see document_store).
Connects to a ChromaDB server when CHROMA_HOST is set, otherwise uses a
local persistent client.
"""

import json
import logging
import os
import uuid
from typing import Any, Dict, List, Optional

from chatrag import config
from chatrag.models.knowledge import Document, QueryResult
from chatrag.rag.document_store import DocumentStore
from chatrag.rag.vector_store import VectorStore, VectorStoreBackend

logger = logging.getLogger(__name__)


def _flatten_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """ChromaDB only accepts scalar metadata values; nested values are stored as JSON strings."""
    flat = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            flat[key] = value
        else:
            flat[key] = json.dumps(value, ensure_ascii=False)
    return flat


class ChromaVectorStore(VectorStore):
    backend = VectorStoreBackend.CHROMA

    def __init__(
        self,
        persist_dir: str = config.CHROMA_PERSIST_DIR,
        host: Optional[str] = config.CHROMA_HOST,
        port: int = config.CHROMA_PORT,
        collection_name: str = config.CHROMA_COLLECTION,
        document_store: Optional[DocumentStore] = None,
        client=None,
        timeout: float = config.VECTOR_STORE_TIMEOUT_SECONDS,
    ):
        super().__init__(timeout=timeout)
        self.persist_dir = persist_dir
        self.host = host
        self.port = port
        self.collection_name = collection_name
        self.document_store = document_store or DocumentStore()
        self._client = client
        self._collection = None

    def _get_client(self):
        if self._client is None:
            import chromadb

            if self.host:
                self._client = chromadb.HttpClient(host=self.host, port=self.port)
                logger.info(f"[VECTOR_STORE] Connected to ChromaDB server at {self.host}:{self.port}")
            else:
                os.makedirs(self.persist_dir, exist_ok=True)
                self._client = chromadb.PersistentClient(path=self.persist_dir)
        return self._client

    def _get_collection(self):
        """Get or create the chunk collection.

        Uses cosine distance, which works well with OpenAI embeddings
        (they are normalized).
        """
        if self._collection is None:
            self._collection = self._get_client().get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collection

    def _connect(self) -> None:
        self.document_store.init_db()
        self._get_collection()

    def _insert_document(self, title: str, content: str, metadata: Dict[str, Any]) -> str:
        return self.document_store.insert_document(title, content, metadata)

    def _insert_chunk(
        self, content: str, vector: List[float], document_id: str, metadata: Dict[str, Any]
    ) -> str:
        chunk_id = str(uuid.uuid4())
        self._get_collection().add(
            ids=[chunk_id],
            embeddings=[vector],
            documents=[content],
            metadatas=[_flatten_metadata({**metadata, "document_id": document_id})],
        )
        return chunk_id

    def _match(self, query_vector: List[float], limit: int, threshold: float) -> List[QueryResult]:
        results = self._get_collection().query(
            query_embeddings=[query_vector],
            n_results=limit,
            include=["documents", "metadatas", "distances"],
        )

        parsed = []
        if results and results["ids"] and results["ids"][0]:
            for i, chunk_id in enumerate(results["ids"][0]):
                metadata = dict(results["metadatas"][0][i] or {})
                parsed.append(QueryResult(
                    content=results["documents"][0][i],
                    document_id=metadata.get("document_id"),
                    similarity=1 - results["distances"][0][i],
                    metadata=metadata,
                    chunk_id=chunk_id,
                ))
        return parsed

    def _select_document(self, document_id: str) -> Optional[Document]:
        return self.document_store.get_document(document_id)

    def _delete_document(self, document_id: str) -> bool:
        self._get_collection().delete(where={"document_id": document_id})
        return self.document_store.delete_document(document_id)

    def _ping(self) -> None:
        self._get_client().heartbeat()
        self.document_store.ping()

    def get_collection_info(self) -> Dict[str, Any]:
        """Get information about the current collection."""
        collection = self._get_collection()
        return {
            "name": self.collection_name,
            "count": collection.count(),
            "metadata": collection.metadata,
        }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    store = ChromaVectorStore()
    info = store.get_collection_info()
    print(f"Collection: {info['name']}")
    print(f"Chunks stored: {info['count']}")
