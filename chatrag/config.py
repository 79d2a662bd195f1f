import os
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables from .env file with explicit path
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env')

# RAG Configuration
RAG_ENABLED = os.getenv("RAG_ENABLED", "false").lower() == "true"
RAG_HEALTH_CHECK_INTERVAL = int(os.getenv("RAG_HEALTH_CHECK_INTERVAL", "3600"))  # 1 hour

# OpenAI Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# Embedding Configuration
EMBEDDING_PROVIDER = os.getenv("EMBEDDING_PROVIDER", "openai")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIMENSIONS = int(os.getenv("EMBEDDING_DIMENSIONS", "1536"))
EMBEDDING_MAX_RETRIES = int(os.getenv("EMBEDDING_MAX_RETRIES", "3"))
EMBEDDING_RETRY_DELAY_SECONDS = float(os.getenv("EMBEDDING_RETRY_DELAY_SECONDS", "1.0"))
EMBEDDING_TIMEOUT_SECONDS = float(os.getenv("EMBEDDING_TIMEOUT_SECONDS", "30"))
# Stays below the provider's published limit
EMBEDDING_MAX_TOKENS_PER_MINUTE = int(os.getenv("EMBEDDING_MAX_TOKENS_PER_MINUTE", "100000"))

# Chunking Configuration (sizes are characters, not tokens)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
MIN_CHUNK_SIZE = int(os.getenv("MIN_CHUNK_SIZE", "100"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
SPLIT_LONG_CHUNKS = os.getenv("SPLIT_LONG_CHUNKS", "true").lower() != "false"

# Vector Store Configuration
#
# "chroma" keeps chunk vectors in ChromaDB and documents in a local SQLite table.
# "supabase" uses the knowledge_base / knowledge_chunks tables and the match_chunks RPC.
VECTOR_STORE_BACKEND = os.getenv("VECTOR_STORE_BACKEND", "chroma")
VECTOR_STORE_TIMEOUT_SECONDS = float(os.getenv("VECTOR_STORE_TIMEOUT_SECONDS", "15"))

CHROMA_PERSIST_DIR = os.getenv(
    "CHROMA_PERSIST_DIR",
    str(Path(__file__).parent / "rag" / "chroma_db"),
)
CHROMA_HOST = os.getenv("CHROMA_HOST")  # Remote ChromaDB server; persistent local client when unset
CHROMA_PORT = int(os.getenv("CHROMA_PORT", "8000"))
CHROMA_COLLECTION = os.getenv("CHROMA_COLLECTION", "knowledge_chunks")
DOCUMENT_DB_PATH = os.getenv("DOCUMENT_DB_PATH", "chatrag/knowledge_documents.db")

# Supabase Configuration
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_KNOWLEDGE_TABLE = os.getenv("SUPABASE_KNOWLEDGE_TABLE", "knowledge_base")
SUPABASE_CHUNKS_TABLE = os.getenv("SUPABASE_CHUNKS_TABLE", "knowledge_chunks")
SUPABASE_MATCH_FUNCTION = os.getenv("SUPABASE_MATCH_FUNCTION", "match_chunks")

# Retrieval Configuration
RAG_MAX_RESULTS = int(os.getenv("RAG_MAX_RESULTS", "5"))
RAG_SIMILARITY_THRESHOLD = float(os.getenv("RAG_SIMILARITY_THRESHOLD", "0.75"))
RAG_MAX_CONTEXT_LENGTH = int(os.getenv("RAG_MAX_CONTEXT_LENGTH", "2000"))
RAG_QUERY_EXPANSION = os.getenv("RAG_QUERY_EXPANSION", "true").lower() != "false"
RAG_MAX_QUERY_EXPANSIONS = int(os.getenv("RAG_MAX_QUERY_EXPANSIONS", "2"))
RAG_CONTEXT_HEADER = os.getenv("RAG_CONTEXT_HEADER", "Reference material:")
