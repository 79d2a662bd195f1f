# Entry point for the FastAPI app
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
import logging

from chatrag.rag.query_engine import SearchOptions
from chatrag.rag.rag_system import get_rag_system

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI()


class DocumentRequest(BaseModel):
    title: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    query: str
    max_results: Optional[int] = None
    similarity_threshold: Optional[float] = None
    max_context_length: Optional[int] = None


@app.on_event("startup")
async def startup_event():
    result = await get_rag_system().initialize()
    logger.info(f"[STARTUP] RAG system: {result}")


@app.on_event("shutdown")
async def shutdown_event():
    await get_rag_system().shutdown()


@app.get("/")
async def root():
    return {"message": "Knowledge service is running"}


@app.get("/rag/health")
async def rag_health():
    health = await get_rag_system().check_health()
    return health.to_dict()


@app.post("/rag/documents")
async def add_document(request: DocumentRequest):
    rag = get_rag_system()
    if not rag.ready:
        raise HTTPException(status_code=503, detail="RAG system is not enabled or initialized")
    if not request.title.strip() or not request.content.strip():
        raise HTTPException(status_code=400, detail="Document title and content must not be empty")

    result = await rag.add_document(request.title, request.content, request.metadata)
    logger.info(f"[API] Ingested \"{request.title}\": {result.successful_chunks}/{result.total_chunks} chunks")
    return result.to_dict()


@app.get("/rag/documents/{document_id}")
async def get_document(document_id: str):
    document = await get_rag_system().get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document.to_dict()


@app.delete("/rag/documents/{document_id}")
async def delete_document(document_id: str):
    deleted = await get_rag_system().delete_document(document_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"deleted": True, "document_id": document_id}


@app.post("/rag/search")
async def search(request: SearchRequest):
    options = SearchOptions(
        max_results=request.max_results,
        similarity_threshold=request.similarity_threshold,
        max_context_length=request.max_context_length,
    )
    bundle = await get_rag_system().process_message(request.query, options)
    return bundle.to_dict()
