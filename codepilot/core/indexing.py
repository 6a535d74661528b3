"""
File indexing into the similarity store.

A file is split into fixed-size line chunks, the symbol blocks found by the
context extractor are added, and exact-duplicate chunks are dropped before
each one is embedded and stored. Near-duplicates (differing only in
whitespace) are kept as separate chunks.
"""

import asyncio
from dataclasses import dataclass
from typing import List

from .context import extract_all_symbol_blocks
from .errors import EmbeddingError
from ..util.logging import StructuredLogger, logger as default_logger


@dataclass
class IndexResult:
    filename: str
    chunks: int
    embedded: int
    added: int

    @property
    def failed(self) -> bool:
        """Nothing could be embedded out of a non-empty chunk set."""
        return self.chunks > 0 and self.embedded == 0


def chunk_by_lines(text: str, chunk_size: int = 20) -> List[str]:
    """Split text into consecutive chunks of chunk_size lines."""
    if not text:
        return []
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    lines = text.split("\n")
    return ["\n".join(lines[i:i + chunk_size]) for i in range(0, len(lines), chunk_size)]


def collect_index_chunks(text: str, chunk_size: int = 20, include_symbols: bool = True) -> List[str]:
    """
    Line chunks followed by symbol blocks, de-duplicated by exact text.
    First occurrence order is kept.
    """
    candidates = chunk_by_lines(text, chunk_size)
    if include_symbols:
        candidates.extend(extract_all_symbol_blocks(text))

    seen = set()
    chunks = []
    for chunk in candidates:
        if not chunk.strip() or chunk in seen:
            continue
        seen.add(chunk)
        chunks.append(chunk)
    return chunks


async def index_file(store, text: str, filename: str, chunk_size: int = 20,
                     include_symbols: bool = True, logger: StructuredLogger = None) -> IndexResult:
    """
    Embed and store every chunk of a file.

    Chunks whose embedding fails are skipped; the caller decides what a
    fully failed run means (see IndexResult.failed).

    Args:
        store: PersistentVectorStore to add to
        text: File content
        filename: Source name recorded with each chunk
        chunk_size: Lines per line chunk

    Returns:
        IndexResult with chunk, embedded and newly added counts
    """
    logger = logger or default_logger
    chunks = collect_index_chunks(text, chunk_size, include_symbols)

    embedded = 0
    added = 0
    for chunk in chunks:
        try:
            embedding = await store.embedding_provider.embed_text(chunk)
        except EmbeddingError as e:
            logger.log_vector_operation("embed", filename, {"error": str(e)}, status="degraded")
            continue
        embedded += 1
        # add() rewrites the whole store file
        if await asyncio.to_thread(store.add, chunk, filename, embedding):
            added += 1

    result = IndexResult(filename=filename, chunks=len(chunks), embedded=embedded, added=added)
    logger.log_index_operation(filename, result.chunks, result.embedded,
                               status="failed" if result.failed else "success")
    return result
