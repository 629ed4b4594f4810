"""
Chunk schema - the atomic unit that gets embedded and indexed.

Chunks are frozen once built.  The vector store is the only owner; search
results hand out copies so callers can never reach into the corpus.
"""
from __future__ import annotations

from typing import Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_NAMESPACE = "default"

MetadataValue = Union[str, int, float, bool, None]


class Chunk(BaseModel):
    """
    A single embedded text window held by the VectorStore.

    chunk_id is assigned by the store at append time from a monotonic
    counter, so it also records insertion order.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    chunk_id: int
    chunk_index: int = 0                 # Position within the source text

    # Content
    content: str = Field(min_length=1)
    embedding: tuple[float, ...]

    # Partitioning + pass-through metadata (always carries "namespace")
    namespace: str = DEFAULT_NAMESPACE
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)

    @property
    def dimension(self) -> int:
        return len(self.embedding)

    def detached(self) -> "Chunk":
        """Copy safe to hand to callers (metadata dict is not shared)."""
        return self.model_copy(update={"metadata": dict(self.metadata)})
