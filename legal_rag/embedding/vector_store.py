"""
In-Memory Vector Store
-----------------------
Owns the corpus: every Chunk with its embedding, namespace and metadata.

Storage is a copy-on-write snapshot:
  - An immutable tuple of Chunks (insertion order == chunk_id order)
  - A parallel read-only float32 matrix of their embeddings plus row norms

Readers (search) grab the current snapshot reference and never lock.
Writers (upsert / delete) are serialised by a lock, build a new snapshot
and publish it with a single reference swap, so a search sees either the
whole batch or none of it.  Embedding calls happen before the lock is taken.

Search is an exact linear scan (cosine similarity, O(n * d) per query).
That is the intended design for corpora up to the low tens of thousands of
chunks; an ANN index can replace `search` without changing its contract.

"Upsert" is a pure append: re-ingesting identical text yields duplicate
chunks.  There is no content-addressed identity yet.
"""
from __future__ import annotations

import itertools
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np
from loguru import logger

from legal_rag.chunking.chunker import TextChunker
from legal_rag.chunking.schemas import DEFAULT_NAMESPACE, Chunk, MetadataValue
from legal_rag.embedding.embedder import EmbeddingProvider
from legal_rag.errors import DimensionMismatch, EmptyInput


@dataclass(frozen=True)
class SearchHit:
    """One ranked search result."""

    chunk: Chunk
    score: float


@dataclass(frozen=True)
class _Snapshot:
    chunks: tuple[Chunk, ...]
    namespaces: tuple[str, ...]
    matrix: np.ndarray            # (n, d) float32, read-only
    norms: np.ndarray             # (n,) float32, read-only
    dimension: Optional[int]


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


def _empty_snapshot() -> _Snapshot:
    return _Snapshot(
        chunks=(),
        namespaces=(),
        matrix=_frozen(np.empty((0, 0), dtype=np.float32)),
        norms=_frozen(np.empty((0,), dtype=np.float32)),
        dimension=None,
    )


def _normalise_namespace(namespace: Optional[str]) -> str:
    namespace = (namespace or "").strip()
    return namespace or DEFAULT_NAMESPACE


def cosine_scores(matrix: np.ndarray, norms: np.ndarray, query: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of `query` against every row of `matrix`.

    Rows or queries with zero norm score 0.0 instead of dividing by zero.
    """
    query_norm = float(np.linalg.norm(query))
    if query_norm == 0.0 or matrix.shape[0] == 0:
        return np.zeros(matrix.shape[0], dtype=np.float32)
    denom = norms * query_norm
    dots = matrix @ query
    scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return np.clip(scores, -1.0, 1.0)


class VectorStore:
    """
    Namespace-tagged, exact cosine-similarity store.

    Usage:
        store = VectorStore(embedder=OllamaEmbedder(), chunker=TextChunker())
        added = store.upsert("civil-code", [statute_text])
        hits = store.search(embedder.embed_query("tenant rights"), k=6)
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        chunker: Optional[TextChunker] = None,
    ) -> None:
        self.embedder = embedder
        self.chunker = chunker or TextChunker()
        self._snapshot: _Snapshot = _empty_snapshot()
        self._write_lock = threading.Lock()
        self._ids = itertools.count(1)

    # --- Write ----------------------------------------------------------------

    def upsert(
        self,
        namespace: Optional[str],
        texts: Sequence[str],
        metadata: Optional[Mapping[str, MetadataValue]] = None,
    ) -> int:
        """
        Chunk, embed and append `texts` under `namespace`.

        Blank texts are skipped.  Raises EmptyInput when nothing remains.

        Returns:
            Number of chunks added.
        """
        namespace = _normalise_namespace(namespace)
        kept = [t for t in (texts or []) if isinstance(t, str) and t.strip()]
        if not kept:
            raise EmptyInput("texts must be a non-empty array of strings")

        pieces: list[tuple[int, str]] = []
        for text in kept:
            pieces.extend(enumerate(self.chunker.split(text)))

        # Network call: must stay outside the write lock
        vectors = self.embedder.embed_texts([content for _, content in pieces])
        vectors = np.asarray(vectors, dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[0] != len(pieces):
            raise ValueError(
                f"Mismatch: {len(pieces)} chunks vs embeddings of shape {vectors.shape}"
            )

        base_metadata = dict(metadata or {})
        base_metadata["namespace"] = namespace

        with self._write_lock:
            current = self._snapshot
            dimension = vectors.shape[1]
            if current.dimension is not None and dimension != current.dimension:
                raise DimensionMismatch(current.dimension, dimension)

            new_chunks = tuple(
                Chunk(
                    chunk_id=next(self._ids),
                    chunk_index=chunk_index,
                    content=content,
                    embedding=tuple(float(x) for x in vector),
                    namespace=namespace,
                    metadata=dict(base_metadata),
                )
                for (chunk_index, content), vector in zip(pieces, vectors)
            )
            matrix = vectors.copy() if current.dimension is None else np.vstack([current.matrix, vectors])
            norms = np.concatenate([current.norms, np.linalg.norm(vectors, axis=1).astype(np.float32)])
            self._snapshot = _Snapshot(
                chunks=current.chunks + new_chunks,
                namespaces=current.namespaces + (namespace,) * len(new_chunks),
                matrix=_frozen(np.ascontiguousarray(matrix, dtype=np.float32)),
                norms=_frozen(norms),
                dimension=dimension,
            )

        logger.info(
            f"[VectorStore] Upserted {len(new_chunks)} chunk(s) from {len(kept)} text(s) "
            f"| namespace={namespace} | corpus={len(self._snapshot.chunks)}"
        )
        return len(new_chunks)

    def delete_namespace(self, namespace: str) -> int:
        """Remove every chunk tagged with `namespace`. Returns the count removed."""
        namespace = _normalise_namespace(namespace)
        with self._write_lock:
            current = self._snapshot
            keep = [i for i, ns in enumerate(current.namespaces) if ns != namespace]
            removed = len(current.chunks) - len(keep)
            if removed == 0:
                return 0
            self._snapshot = _Snapshot(
                chunks=tuple(current.chunks[i] for i in keep),
                namespaces=tuple(current.namespaces[i] for i in keep),
                matrix=_frozen(np.ascontiguousarray(current.matrix[keep])),
                norms=_frozen(current.norms[keep].copy()),
                # Dimension stays pinned to the embedder configuration
                dimension=current.dimension,
            )
        logger.info(f"[VectorStore] Deleted {removed} chunk(s) | namespace={namespace}")
        return removed

    def clear(self) -> None:
        with self._write_lock:
            self._snapshot = _empty_snapshot()
        logger.info("[VectorStore] Cleared")

    # --- Search ---------------------------------------------------------------

    def search(
        self,
        query_embedding: Sequence[float] | np.ndarray,
        k: int,
        namespace: Optional[str] = None,
    ) -> list[SearchHit]:
        """
        Exact cosine-similarity search.

        Args:
            query_embedding: Query vector; must match the corpus dimension.
            k: Maximum number of hits (>= 1).
            namespace: Restrict the scan to one namespace when given.

        Returns:
            min(k, n) SearchHits sorted by descending score; ties keep
            insertion order.
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        snapshot = self._snapshot
        if not snapshot.chunks:
            return []

        query = np.asarray(query_embedding, dtype=np.float32).reshape(-1)
        if query.shape[0] != snapshot.dimension:
            raise DimensionMismatch(snapshot.dimension, query.shape[0], where="search query")

        if namespace is None:
            rows = np.arange(len(snapshot.chunks))
        else:
            wanted = _normalise_namespace(namespace)
            rows = np.array(
                [i for i, ns in enumerate(snapshot.namespaces) if ns == wanted], dtype=np.int64
            )
            if rows.size == 0:
                return []

        scores = cosine_scores(snapshot.matrix[rows], snapshot.norms[rows], query)
        # Stable sort on negated scores: equal scores keep insertion order
        order = np.argsort(-scores, kind="stable")[:k]
        return [
            SearchHit(chunk=snapshot.chunks[rows[i]].detached(), score=float(scores[i]))
            for i in order
        ]

    # --- Introspection --------------------------------------------------------

    @property
    def dimension(self) -> Optional[int]:
        return self._snapshot.dimension

    def __len__(self) -> int:
        return len(self._snapshot.chunks)

    def stats(self) -> dict:
        snapshot = self._snapshot
        return {
            "total_chunks": len(snapshot.chunks),
            "dimension": snapshot.dimension,
            "namespaces": dict(Counter(snapshot.namespaces)),
        }
