"""
Similarity search over indexed project code.
"""

from .index import PersistentVectorStore, cosine_similarity
from .types import SimilarityRecord, QueryResult
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, OllamaEmbedding

__all__ = [
    'PersistentVectorStore',
    'cosine_similarity',
    'SimilarityRecord',
    'QueryResult',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'OllamaEmbedding'
]
