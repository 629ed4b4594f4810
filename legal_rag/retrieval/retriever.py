"""
Retriever
----------
Embeds the user query, asks the VectorStore for the k nearest chunks and
renders them as a context block for the chat prompt.

Retrieval is best-effort: an unreachable or failing embedding provider
yields an empty RetrievalResult with status FAILED (the error attached)
instead of an exception, so the assistant can always answer without
context.  DimensionMismatch is a corpus integrity error and propagates.

The retriever never logs failures itself; the serving layer decides that.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from langsmith import traceable
from loguru import logger
from pydantic import BaseModel, Field

from legal_rag.chunking.schemas import MetadataValue
from legal_rag.embedding.embedder import EmbeddingProvider
from legal_rag.embedding.vector_store import VectorStore
from legal_rag.errors import ProviderError, ProviderUnavailable
from legal_rag.generation.prompts import CONTEXT_BLOCK_TEMPLATE, CONTEXT_DOCUMENT_TEMPLATE

DEFAULT_TOP_K = 6

# Delimiter tags used by the context block; neutralised inside chunk text
_DELIMITER_RE = re.compile(r"<(\s*/?\s*)(context|document)\b", re.IGNORECASE)


class RetrievedDocument(BaseModel):
    content: str
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


class RetrievalStatus(str, Enum):
    OK = "ok"              # at least one document
    EMPTY = "empty"        # retrieval worked, nothing relevant / empty corpus
    FAILED = "failed"      # embedding provider failed; degraded to no context


@dataclass
class RetrievalResult:
    documents: list[RetrievedDocument] = field(default_factory=list)
    status: RetrievalStatus = RetrievalStatus.EMPTY
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.status is RetrievalStatus.FAILED

    def __len__(self) -> int:
        return len(self.documents)


def _escape_delimiters(text: str) -> str:
    return _DELIMITER_RE.sub(lambda m: f"&lt;{m.group(1)}{m.group(2)}", text)


def format_context(documents: list[RetrievedDocument]) -> str:
    """
    Render documents as numbered <document> blocks wrapped in
    "use if relevant" framing.  Returns "" when there is nothing to inject.
    """
    if not documents:
        return ""
    blocks = [
        CONTEXT_DOCUMENT_TEMPLATE.format(index=i, content=_escape_delimiters(doc.content))
        for i, doc in enumerate(documents, start=1)
    ]
    return CONTEXT_BLOCK_TEMPLATE.format(count=len(blocks), documents="\n\n".join(blocks))


class Retriever:
    """
    Query -> embedding -> VectorStore.search -> [{content, metadata}].

    Stateless per query; one instance can serve concurrent requests.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingProvider,
        top_k: int = DEFAULT_TOP_K,
    ) -> None:
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        self.store = store
        self.embedder = embedder
        self.top_k = top_k

    @traceable(name="retrieve", run_type="retriever")
    def retrieve(
        self,
        query: str,
        k: Optional[int] = None,
        namespace: Optional[str] = None,
    ) -> RetrievalResult:
        """
        Embed the query and return the top-k documents (scores dropped).

        Args:
            query: Raw user query string.
            k: Number of documents; defaults to self.top_k.
            namespace: Optional namespace restriction.
        """
        k = self.top_k if k is None else k
        if not query or not query.strip() or len(self.store) == 0:
            return RetrievalResult()

        logger.debug(f"[Retriever] Query: {query[:80]!r} | k={k}")
        try:
            query_vec = self.embedder.embed_query(query)
        except (ProviderUnavailable, ProviderError) as exc:
            return RetrievalResult(status=RetrievalStatus.FAILED, error=exc)

        hits = self.store.search(query_vec, k=k, namespace=namespace)
        documents = [
            RetrievedDocument(content=hit.chunk.content, metadata=hit.chunk.metadata)
            for hit in hits
        ]
        if hits:
            logger.debug(
                f"[Retriever] Retrieved {len(hits)} document(s) (top score: {hits[0].score:.4f})"
            )
        return RetrievalResult(
            documents=documents,
            status=RetrievalStatus.OK if documents else RetrievalStatus.EMPTY,
        )

    def augment(
        self,
        query: str,
        k: Optional[int] = None,
        namespace: Optional[str] = None,
    ) -> str:
        """Context text for `query`, or "" when nothing was retrieved."""
        return format_context(self.retrieve(query, k=k, namespace=namespace).documents)
