"""
Runtime configuration for the orchestrator.
All settings come from environment variables with local-first defaults.
"""

import os
from pathlib import Path
from typing import Any, Dict, List

# Inference backend
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "deepseek-coder:6.7b")
STREAM_CONNECT_TIMEOUT_SEC = float(os.getenv("STREAM_CONNECT_TIMEOUT_SEC", "10"))

# Generation options
GEN_NUM_PREDICT = int(os.getenv("GEN_NUM_PREDICT", "128"))
GEN_TEMPERATURE = float(os.getenv("GEN_TEMPERATURE", "0.2"))
GEN_TOP_P = float(os.getenv("GEN_TOP_P", "0.95"))
GEN_STOP_SEQUENCES = ["\n\n\n", "```", "System:", "User:"]

# Embeddings and retrieval
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "ollama")  # ollama|hash
EMBED_MODEL = os.getenv("EMBED_MODEL", "nomic-embed-text")
EMBED_DIM = int(os.getenv("EMBED_DIM", "768"))  # only used by the hash provider
VECTOR_STORE_PATH = os.getenv("VECTOR_STORE_PATH", "./data/vector_store.json")
INDEX_CHUNK_LINES = int(os.getenv("INDEX_CHUNK_LINES", "20"))
RAG_TOP_K_INLINE = int(os.getenv("RAG_TOP_K_INLINE", "2"))
RAG_TOP_K_CHAT = int(os.getenv("RAG_TOP_K_CHAT", "3"))

# Context limiter
CONTEXT_MAX_LINES = int(os.getenv("CONTEXT_MAX_LINES", "300"))
CONTEXT_MAX_CHARS = int(os.getenv("CONTEXT_MAX_CHARS", "8000"))

# Command guard
ALLOWED_COMMANDS = [
    c.strip()
    for c in os.getenv("ALLOWED_COMMANDS", "npm test,ls,dir,git status,pwd,node -v").split(",")
    if c.strip()
]
COMMAND_TIMEOUT_SEC = float(os.getenv("COMMAND_TIMEOUT_SEC", "5"))

# API
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
DEFAULT_SESSION_ID = "local-session"

# Debug flag
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Version string
VERSION = "0.3.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_generation_options() -> Dict[str, Any]:
    """Generation options forwarded verbatim to the backend."""
    return {
        "num_predict": GEN_NUM_PREDICT,
        "temperature": GEN_TEMPERATURE,
        "top_p": GEN_TOP_P,
        "stop": list(GEN_STOP_SEQUENCES),
    }


def get_allowed_commands() -> List[str]:
    """Get the command allow-list."""
    return list(ALLOWED_COMMANDS)


def ensure_store_directory():
    """Ensure the vector store directory exists."""
    Path(VECTOR_STORE_PATH).parent.mkdir(parents=True, exist_ok=True)


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "hash":
        from codepilot.vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(dimension=EMBED_DIM)

    from codepilot.vector.embeddings import OllamaEmbedding
    return OllamaEmbedding(model_name=EMBED_MODEL, host=OLLAMA_BASE_URL)


def get_vector_store(embedding_provider=None):
    """Get the persistent vector store, loading it from VECTOR_STORE_PATH."""
    from codepilot.vector.index import PersistentVectorStore

    ensure_store_directory()
    provider = embedding_provider if embedding_provider is not None else get_embedding_provider()
    return PersistentVectorStore(Path(VECTOR_STORE_PATH), provider)


def get_stream_relay():
    """Get a streaming relay bound to the configured backend."""
    from codepilot.llm.ollama_stream import OllamaStreamRelay
    return OllamaStreamRelay(base_url=OLLAMA_BASE_URL, connect_timeout=STREAM_CONNECT_TIMEOUT_SEC)


def get_command_guard():
    """Get a command guard with the configured allow-list."""
    from codepilot.core.sandbox import CommandGuard
    return CommandGuard(get_allowed_commands(), default_timeout=COMMAND_TIMEOUT_SEC)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if EMBED_PROVIDER not in ["ollama", "hash"]:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if INDEX_CHUNK_LINES < 1:
        issues.append("INDEX_CHUNK_LINES must be >= 1")

    if CONTEXT_MAX_LINES < 1 or CONTEXT_MAX_CHARS < 1:
        issues.append("CONTEXT_MAX_LINES and CONTEXT_MAX_CHARS must be >= 1")

    if COMMAND_TIMEOUT_SEC <= 0:
        issues.append("COMMAND_TIMEOUT_SEC must be > 0")

    if not ALLOWED_COMMANDS:
        issues.append("ALLOWED_COMMANDS is empty; every command will be rejected")

    return issues
