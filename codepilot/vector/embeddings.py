"""
Embedding providers.
Ollama serves real embeddings; the hash provider is deterministic and offline.
"""

from abc import ABC, abstractmethod
import hashlib
from typing import List, Optional

import httpx
import ollama

from ..core.errors import EmbeddingError


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    async def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text. Raises EmbeddingError."""
        pass

    @abstractmethod
    def get_dimension(self) -> Optional[int]:
        """Get the dimension of the embedding vectors, if known."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Generates reproducible embeddings from text so the pipeline can run
    without an embedding model.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_sync(self, text: str) -> List[float]:
        vector: List[float] = []
        counter = 0
        # Chain sha256 digests until the requested dimension is filled
        while len(vector) < self.dimension:
            digest = hashlib.sha256(f"{counter}:{text}".encode()).hexdigest()
            for i in range(0, len(digest), 8):
                if len(vector) >= self.dimension:
                    break
                value = int(digest[i:i + 8], 16)
                # Map to [-1, 1] for cosine similarity
                vector.append((value / (2 ** 32)) * 2 - 1)
            counter += 1
        return vector

    async def embed_text(self, text: str) -> List[float]:
        return self.embed_sync(text)

    def get_dimension(self) -> int:
        return self.dimension


class OllamaEmbedding(IEmbeddingProvider):
    """Embeddings from the local Ollama server."""

    def __init__(self, model_name: str = "nomic-embed-text", host: Optional[str] = None,
                 client: Optional[ollama.AsyncClient] = None):
        self.model_name = model_name
        self._client = client or ollama.AsyncClient(host=host)
        self._dimension: Optional[int] = None

    async def embed_text(self, text: str) -> List[float]:
        try:
            response = await self._client.embeddings(model=self.model_name, prompt=text)
        except ollama.ResponseError as e:
            raise EmbeddingError(f"Ollama embedding error: {e}") from e
        except (httpx.HTTPError, ConnectionError) as e:
            raise EmbeddingError(f"Ollama unreachable: {e}") from e

        embedding = response["embedding"] if response is not None else None
        if not embedding:
            raise EmbeddingError(f"Empty embedding from model {self.model_name}")

        if self._dimension is None:
            self._dimension = len(embedding)
        return list(embedding)

    def get_dimension(self) -> Optional[int]:
        return self._dimension
