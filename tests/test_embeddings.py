"""
Tests for the embedding providers.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import ollama
import pytest

from codepilot.core.errors import EmbeddingError
from codepilot.vector.embeddings import (
    DeterministicHashEmbedding,
    IEmbeddingProvider,
    OllamaEmbedding,
)


def test_embedding_interface():
    """Test that the hash provider implements the interface correctly."""
    embedder = DeterministicHashEmbedding(dimension=384)

    assert isinstance(embedder, IEmbeddingProvider)
    assert embedder.get_dimension() == 384


def test_deterministic_embedding():
    """Test that the same input always produces the same output."""
    embedder = DeterministicHashEmbedding(dimension=384)

    vector1 = asyncio.run(embedder.embed_text("Hello, world!"))
    vector2 = asyncio.run(embedder.embed_text("Hello, world!"))

    assert vector1 == vector2
    assert len(vector1) == 384


def test_different_inputs_produce_different_vectors():
    embedder = DeterministicHashEmbedding(dimension=64)
    assert embedder.embed_sync("Hello, world!") != embedder.embed_sync("Goodbye, world!")


def test_values_in_unit_range_for_odd_dimension():
    """Dimensions that are not a multiple of the digest size are filled exactly."""
    vector = DeterministicHashEmbedding(dimension=13).embed_sync("abc")
    assert len(vector) == 13
    assert all(-1.0 <= v <= 1.0 for v in vector)


class TestOllamaEmbedding:
    """Ollama-backed provider with a mocked client."""

    def test_returns_embedding_and_learns_dimension(self):
        client = AsyncMock()
        client.embeddings.return_value = {"embedding": [0.1, 0.2, 0.3]}
        provider = OllamaEmbedding(model_name="nomic-embed-text", client=client)

        assert provider.get_dimension() is None
        vector = asyncio.run(provider.embed_text("def add(a, b):"))

        assert vector == [0.1, 0.2, 0.3]
        assert provider.get_dimension() == 3
        client.embeddings.assert_awaited_once_with(model="nomic-embed-text", prompt="def add(a, b):")

    def test_response_error_becomes_embedding_error(self):
        client = AsyncMock()
        client.embeddings.side_effect = ollama.ResponseError("model not found", 404)
        provider = OllamaEmbedding(client=client)

        with pytest.raises(EmbeddingError, match="model not found"):
            asyncio.run(provider.embed_text("x"))

    def test_connection_failure_becomes_embedding_error(self):
        client = AsyncMock()
        client.embeddings.side_effect = httpx.ConnectError("connection refused")
        provider = OllamaEmbedding(client=client)

        with pytest.raises(EmbeddingError, match="unreachable"):
            asyncio.run(provider.embed_text("x"))

    def test_empty_embedding_is_an_error(self):
        client = AsyncMock()
        client.embeddings.return_value = {"embedding": []}
        provider = OllamaEmbedding(client=client)

        with pytest.raises(EmbeddingError):
            asyncio.run(provider.embed_text("x"))
