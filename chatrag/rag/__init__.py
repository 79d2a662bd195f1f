"""
RAG (Retrieval Augmented Generation) package for the assistant.

Ingests documents into a searchable knowledge store and, for each user
message, assembles the most relevant stored content into a bounded
context string that is prepended to the language-model prompt.

Components:
    - chunker: Splits document text into bounded, overlapping chunks
    - rate_limiter: Rolling per-minute token budget for embedding calls
    - providers: Embedding provider interface and registry (OpenAI)
    - embedder: Rate-limited, retried embedding generation
    - vector_store: Vector store interface and backend registry
    - chroma_store / supabase_store: Similarity-search backends
    - document_store: SQLite document table for the ChromaDB backend
    - knowledge_base: Ingestion and single-query similarity search
    - query_engine: Query expansion, dedup/ranking and context assembly
    - rag_system: Startup, health checks and the facade used by message handling
"""
