"""
Record types for the similarity store.
"""

from typing import Any, Dict, List, Tuple
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SimilarityRecord:
    """A stored chunk of source text with its embedding."""

    text: str
    """The chunk text exactly as indexed"""

    source_name: str
    """File (or other source) the chunk came from"""

    embedding: Tuple[float, ...] = field(default=(), compare=False)
    """Embedding vector; fixed dimensionality per backend"""

    @property
    def key(self) -> Tuple[str, str]:
        """Identity used for de-duplication."""
        return (self.source_name, self.text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "source_name": self.source_name,
            "embedding": list(self.embedding),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SimilarityRecord":
        return cls(
            text=str(raw["text"]),
            source_name=str(raw["source_name"]),
            embedding=tuple(float(x) for x in raw["embedding"]),
        )


@dataclass
class QueryResult:
    """Represents a search result from the similarity store."""

    text: str
    source_name: str
    score: float
    """Cosine similarity with the query (0 when undefined)"""

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "source_name": self.source_name, "score": self.score}


def as_vector(values: List[float]) -> Tuple[float, ...]:
    """Normalize an embedding payload into an immutable float tuple."""
    return tuple(float(v) for v in values)
