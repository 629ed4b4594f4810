"""
Embedding Providers
--------------------
Two interchangeable providers with an identical interface:

  OllamaEmbedder  -- local Ollama server, POST /api/embed (default)
  OpenAIEmbedder  -- OpenAI text-embedding-3-small

Both:
  - Batch requests (batch_size texts per call)
  - Translate transport failures to ProviderUnavailable and any other
    non-success reply to ProviderError
  - Learn the vector dimension from the first successful vector and raise
    DimensionMismatch if a later vector disagrees
  - Never retry internally; retries are the caller's decision
"""
from __future__ import annotations

import time
from typing import Optional, Protocol, Sequence

import httpx
import numpy as np
from langsmith import traceable
from loguru import logger

from legal_rag.errors import DimensionMismatch, ProviderError, ProviderUnavailable

OLLAMA_HOST = "http://localhost:11434"
OLLAMA_EMBED_MODEL = "nomic-embed-text"
OPENAI_EMBED_MODEL = "text-embedding-3-small"
BATCH_SIZE = 64


class EmbeddingProvider(Protocol):
    """What the vector store and retriever need from an embedder."""

    dimension: Optional[int]

    def embed_texts(self, texts: Sequence[str]) -> np.ndarray: ...

    def embed_query(self, text: str) -> np.ndarray: ...


class BaseEmbedder:
    """Shared batching, shape validation and usage counters."""

    name = "embedder"

    def __init__(self, model: str, batch_size: int = BATCH_SIZE) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        self.model = model
        self.batch_size = batch_size
        self.dimension: Optional[int] = None
        self.total_api_calls: int = 0
        self.total_texts_embedded: int = 0

    @traceable(name="embed_texts", run_type="embedding")
    def embed_texts(self, texts: Sequence[str]) -> np.ndarray:
        """
        Embed a list of strings and return an (N, D) float32 array.
        Texts are processed in batches of `batch_size`.
        """
        if not texts:
            return np.empty((0, self.dimension or 0), dtype=np.float32)

        rows: list[list[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = list(texts[i: i + self.batch_size])
            start = time.perf_counter()
            vectors = self._embed_batch(batch)
            elapsed = time.perf_counter() - start
            if len(vectors) != len(batch):
                raise ProviderError(
                    f"[{self.name}] expected {len(batch)} embeddings, got {len(vectors)}"
                )
            for vec in vectors:
                self._check_vector(vec)
            rows.extend(vectors)
            self.total_api_calls += 1
            self.total_texts_embedded += len(batch)
            logger.debug(
                f"[{self.name}] Batch {i // self.batch_size + 1} | "
                f"{len(batch)} texts | {elapsed:.2f}s | model={self.model}"
            )

        return np.asarray(rows, dtype=np.float32)

    def embed_query(self, text: str) -> np.ndarray:
        """Embed a single query string. Returns a (D,) float32 array."""
        return self.embed_texts([text])[0]

    def usage_summary(self) -> dict:
        return {
            "provider": self.name,
            "model": self.model,
            "dimension": self.dimension,
            "total_api_calls": self.total_api_calls,
            "total_texts_embedded": self.total_texts_embedded,
        }

    def _check_vector(self, vec: Sequence[float]) -> None:
        if not isinstance(vec, (list, tuple)):
            raise ProviderError(
                f"[{self.name}] provider returned a {type(vec).__name__} instead of a vector"
            )
        if not vec:
            raise ProviderError(f"[{self.name}] provider returned an empty embedding")
        if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in vec):
            raise ProviderError(f"[{self.name}] provider returned a non-numeric embedding")
        if self.dimension is None:
            self.dimension = len(vec)
            logger.info(f"[{self.name}] Embedding dimension detected: {self.dimension}")
        elif len(vec) != self.dimension:
            raise DimensionMismatch(self.dimension, len(vec), where=f"{self.name} output")

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

class OllamaEmbedder(BaseEmbedder):
    """Embeddings from a local Ollama server (nomic-embed-text by default)."""

    name = "OllamaEmbedder"

    def __init__(
        self,
        base_url: str = OLLAMA_HOST,
        model: str = OLLAMA_EMBED_MODEL,
        batch_size: int = BATCH_SIZE,
        timeout: float = 60.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(model=model, batch_size=batch_size)
        self.base_url = base_url.strip().rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            response = self._client.post("/api/embed", json={"model": self.model, "input": texts})
            response.raise_for_status()
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderUnavailable(
                f"Ollama not reachable at {self.base_url}: {exc}"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Ollama embed failed ({exc.response.status_code}): {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Ollama embed request failed: {exc}") from exc

        try:
            embeddings = response.json()["embeddings"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ProviderError(f"Malformed Ollama embed response: {exc}") from exc
        if not isinstance(embeddings, list):
            raise ProviderError("Malformed Ollama embed response: 'embeddings' is not a list")
        return embeddings

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class OpenAIEmbedder(BaseEmbedder):
    """Embeddings from the OpenAI API (text-embedding-3-small by default)."""

    name = "OpenAIEmbedder"

    def __init__(
        self,
        model: str = OPENAI_EMBED_MODEL,
        batch_size: int = 512,
        client=None,
    ) -> None:
        super().__init__(model=model, batch_size=batch_size)
        if client is None:
            from openai import OpenAI  # lazy import keeps import graph clean
            client = OpenAI()
        self._client = client

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        import openai

        # Replace blank strings with a space to avoid API errors
        safe_texts = [t if t.strip() else " " for t in texts]
        try:
            response = self._client.embeddings.create(model=self.model, input=safe_texts)
        except (openai.APIConnectionError, openai.APITimeoutError) as exc:
            raise ProviderUnavailable(f"OpenAI embeddings unreachable: {exc}") from exc
        except openai.OpenAIError as exc:
            raise ProviderError(f"OpenAI embeddings failed: {exc}") from exc

        return [item.embedding for item in sorted(response.data, key=lambda x: x.index)]
