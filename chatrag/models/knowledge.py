"""Knowledge-base data model shared by the RAG pipeline.

Documents and chunks are created at ingestion time and never mutated
afterwards. Query results and context bundles are ephemeral, produced
per search call.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthStatus(str, Enum):
    """Aggregate health states reported by every component."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthReport:
    status: HealthStatus
    message: str
    components: Dict[str, "HealthReport"] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.components:
            data["components"] = {
                name: report.to_dict() for name, report in self.components.items()
            }
        return data


@dataclass
class Document:
    """A stored knowledge-base document.

    Attributes:
        id: Store-generated identifier.
        title: Human readable title, also used as the context block heading.
        content: Raw document text as ingested.
        metadata: Free-form metadata inherited by every chunk.
        created_at: ISO-8601 creation timestamp.
        updated_at: ISO-8601 timestamp of the last write.
    """
    id: str
    title: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "metadata": self.metadata,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class Chunk:
    """A bounded piece of a document's text, the unit of embedding and retrieval."""
    content: str
    chunk_index: int
    total_chunks: int
    document_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def char_count(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class QueryResult:
    content: str
    document_id: Optional[str]
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    chunk_id: Optional[str] = None
    truncated: bool = False

    @property
    def title(self) -> Optional[str]:
        return self.metadata.get("title") if self.metadata else None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "content": self.content,
            "document_id": self.document_id,
            "metadata": self.metadata,
            "similarity": self.similarity,
        }
        if self.chunk_id is not None:
            data["chunk_id"] = self.chunk_id
        if self.truncated:
            data["truncated"] = True
        return data


@dataclass
class StoreResult:
    """Outcome of a vector-store write. Failures carry the error text instead of raising."""
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class IngestionResult:
    success: bool
    document_id: Optional[str] = None
    total_chunks: int = 0
    successful_chunks: int = 0
    failed_chunks: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "document_id": self.document_id,
            "total_chunks": self.total_chunks,
            "successful_chunks": self.successful_chunks,
            "failed_chunks": self.failed_chunks,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ContextBundle:
    """Ranked results that fit the context budget plus the assembled prompt text."""
    context: str = ""
    results: List[QueryResult] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "context": self.context,
            "results": [r.to_dict() for r in self.results],
            "metadata": self.metadata,
        }
        if self.error:
            data["error"] = self.error
        return data
