"""Pipeline configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
DOCS_DIR = Path(os.getenv("DOCS_DIR", str(BASE_DIR / "docs")))
INDEX_PATH = Path(os.getenv("INDEX_PATH", str(DATA_DIR / "index.json")))

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "qwen3:1.7b")
JUDGE_MODEL = os.getenv("JUDGE_MODEL", CHAT_MODEL)
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "bge-small-en-v1.5")

# Vector index
EMBEDDING_DIM = int(os.getenv("EMBEDDING_DIM", "384"))
MAX_ELEMENTS = int(os.getenv("MAX_ELEMENTS", "10000"))     # per namespace
NAMESPACE = os.getenv("NAMESPACE", "default")

# Chunking (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "40"))
CHUNK_SEPARATOR = os.getenv("CHUNK_SEPARATOR") or None    # None = any whitespace run

# Retrieval
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "3"))
MAX_CONTEXT_CHARS = int(os.getenv("MAX_CONTEXT_CHARS", "4000"))

# Ingestion
INGEST_CONCURRENCY = int(os.getenv("INGEST_CONCURRENCY", "4"))

# External calls (embedding / generation / judging)
EXTERNAL_MAX_RETRIES = int(os.getenv("EXTERNAL_MAX_RETRIES", "3"))
RETRY_BACKOFF_SECONDS = float(os.getenv("RETRY_BACKOFF_SECONDS", "0.5"))
EXTERNAL_TIMEOUT = float(os.getenv("EXTERNAL_TIMEOUT", "60.0"))

# API
API_VERSION = "1.0.0"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
