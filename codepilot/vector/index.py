"""
Persistent similarity store.

Append-only collection of (text, source_name, embedding) records backed by a
single JSON file and queried by exhaustive cosine similarity. Records are
unique by (source_name, text); re-adding identical content is a no-op.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple

import numpy as np

from .embeddings import IEmbeddingProvider
from .types import QueryResult, SimilarityRecord, as_vector
from ..core.errors import EmbeddingError
from ..util.logging import StructuredLogger, logger as default_logger

STORE_FORMAT_VERSION = 1


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Dot product over the product of norms.

    Zero-norm vectors, mismatched dimensions and non-finite results score 0.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0

    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0 or not np.isfinite(denom):
        return 0.0

    score = float(np.dot(va, vb) / denom)
    if not np.isfinite(score):
        return 0.0
    return score


class PersistentVectorStore:
    """
    Similarity store persisted to one file.

    Mutations are serialized by a lock. Searches score a snapshot of the
    record list taken under that lock, so a concurrent add is either fully
    visible or not at all. The file is rewritten after every insertion.
    """

    def __init__(self, path: Optional[Path], embedding_provider: IEmbeddingProvider,
                 logger: StructuredLogger = None, autoload: bool = True):
        self.path = Path(path) if path is not None else None
        self.embedding_provider = embedding_provider
        self.logger = logger or default_logger

        self._records: List[SimilarityRecord] = []
        self._keys: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()

        # Snapshot versions; an older snapshot never overwrites a newer file
        self._write_lock = threading.Lock()
        self._version = 0
        self._persisted_version = 0

        if autoload:
            self.load()

    def load(self) -> int:
        """
        Load records from disk. A missing file is an empty store; a corrupt
        file is logged and treated as empty.

        Returns:
            Number of records loaded
        """
        records: List[SimilarityRecord] = []
        if self.path is not None and self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                items = raw["records"] if isinstance(raw, dict) else raw
                records = [SimilarityRecord.from_dict(item) for item in items]
            except (OSError, ValueError, KeyError, TypeError) as e:
                self.logger.log_vector_operation(
                    "load", str(self.path), {"error": str(e)}, status="degraded"
                )
                records = []

        with self._lock:
            self._records = []
            self._keys = set()
            for record in records:
                if record.key in self._keys:
                    continue
                self._records.append(record)
                self._keys.add(record.key)
            count = len(self._records)

        self.logger.log_vector_operation("load", str(self.path), {"records": count})
        return count

    def add(self, text: str, source_name: str, embedding: Sequence[float]) -> bool:
        """
        Insert a record unless (source_name, text) is already stored.

        Returns:
            True if the record was inserted (and persisted)

        Raises:
            OSError: the store file could not be written; the record is not kept
        """
        record = SimilarityRecord(text=text, source_name=source_name, embedding=as_vector(embedding))
        with self._lock:
            if record.key in self._keys:
                return False
            self._records.append(record)
            self._keys.add(record.key)
            self._version += 1
            version = self._version
            snapshot = list(self._records)

        try:
            self._flush(snapshot, version)
        except OSError as e:
            with self._lock:
                self._records = [r for r in self._records if r is not record]
                self._keys.discard(record.key)
            self.logger.log_vector_operation("add", source_name, {"error": str(e)}, status="failed")
            raise

        self.logger.log_vector_operation("add", source_name, {"dimension": len(record.embedding)})
        return True

    def snapshot(self) -> List[SimilarityRecord]:
        """Consistent copy of the stored records in insertion order."""
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def search_by_vector(self, query_vector: Sequence[float], top_k: int = 5) -> List[QueryResult]:
        """Score every record against query_vector and return the top_k."""
        if top_k <= 0:
            return []
        records = self.snapshot()
        if not records:
            return []

        scored = [(cosine_similarity(query_vector, r.embedding), r) for r in records]
        # sorted() is stable: equal scores keep insertion order
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
        return [
            QueryResult(text=r.text, source_name=r.source_name, score=score)
            for score, r in scored[:top_k]
        ]

    async def search(self, query_text: str, top_k: int = 2) -> List[QueryResult]:
        """
        Embed query_text and return the top_k most similar records.

        Retrieval is best-effort: an empty store or an embedding failure
        yields an empty list.
        """
        if not self.snapshot():
            return []

        try:
            query_vector = await self.embedding_provider.embed_text(query_text)
        except EmbeddingError as e:
            self.logger.log_vector_operation("search", "query", {"error": str(e)}, status="degraded")
            return []

        return self.search_by_vector(query_vector, top_k)

    def _flush(self, snapshot: List[SimilarityRecord], version: int) -> None:
        if self.path is None:
            return
        with self._write_lock:
            if version <= self._persisted_version:
                return
            payload = {
                "version": STORE_FORMAT_VERSION,
                "records": [r.to_dict() for r in snapshot],
            }
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so a crash never leaves a half-written store
            fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=".store-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f)
                os.replace(tmp_name, self.path)
            except OSError:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            self._persisted_version = version
