"""
Shared test fixtures.

Provides: deterministic fake embedder, scripted fake chat client, and
pre-wired VectorStore / Retriever / ChatService instances.  Nothing here
touches the network.
"""
from __future__ import annotations

import string
import threading

import numpy as np
import pytest

from legal_rag.chunking.chunker import TextChunker
from legal_rag.config import Settings
from legal_rag.embedding.vector_store import VectorStore
from legal_rag.errors import ProviderUnavailable
from legal_rag.retrieval.retriever import Retriever
from legal_rag.serving.pipeline import build_service

ALPHABET = string.ascii_lowercase


class FakeEmbedder:
    """
    Letter-frequency embedder: dimension 26, one axis per ascii letter.

    Texts sharing vocabulary land close together, which is enough to
    exercise ranking deterministically.
    """

    def __init__(self, dimension: int = 26) -> None:
        self.dimension = dimension
        self.calls: list[list[str]] = []
        self.fail_with: Exception | None = None
        self.fail_times = 0          # fail this many calls, then succeed
        self._lock = threading.Lock()

    def vector(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dimension, dtype=np.float32)
        for ch in text.lower():
            idx = ALPHABET.find(ch)
            if idx != -1:
                vec[idx % self.dimension] += 1.0
        return vec

    def embed_texts(self, texts):
        with self._lock:
            self.calls.append(list(texts))
            if self.fail_with is not None and self.fail_times != 0:
                self.fail_times -= 1
                raise self.fail_with
        if not texts:
            return np.empty((0, self.dimension), dtype=np.float32)
        return np.stack([self.vector(t) for t in texts])

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed_texts([text])[0]


class FakeChatClient:
    """Scripted chat client that records every prompt it receives."""

    provider = "fake"

    def __init__(self, reply: str = "Here is some general legal information.", models=None) -> None:
        self.reply = reply
        self.models = set(models) if models is not None else {"gpt-4o-mini", "llama3.2"}
        self.calls: list[tuple[str, list[dict]]] = []
        self.list_error: Exception | None = None
        self.complete_error: Exception | None = None

    def complete(self, model, messages):
        if self.complete_error is not None:
            raise self.complete_error
        self.calls.append((model, list(messages)))
        return self.reply

    def list_models(self):
        if self.list_error is not None:
            raise self.list_error
        return set(self.models)

    def install_hint(self, model):
        return f"Install it with: fake pull {model}"


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store(embedder) -> VectorStore:
    return VectorStore(embedder=embedder, chunker=TextChunker(chunk_size=200, overlap=20))


@pytest.fixture
def retriever(store, embedder) -> Retriever:
    return Retriever(store=store, embedder=embedder, top_k=3)


@pytest.fixture
def chat_client() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def settings() -> Settings:
    return Settings.model_validate(
        {
            "chunking": {"chunk_size": 200, "overlap": 20},
            "retrieval": {"top_k": 3},
            "ingest": {"retry_attempts": 2, "retry_max_wait": 0},
            "logging": {"level": "DEBUG", "file": None},
        }
    )


@pytest.fixture
def service(settings, embedder, chat_client):
    return build_service(settings, embedder=embedder, chat_client=chat_client)


@pytest.fixture
def unavailable() -> ProviderUnavailable:
    return ProviderUnavailable("connection refused")
