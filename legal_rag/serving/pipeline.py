"""
Chat Serving Pipeline
----------------------
Orchestrates the two request lifecycles:

    ingest(namespace, texts)
        |
        v
    TextChunker -> Embedder -> VectorStore.upsert      (retried on ProviderUnavailable)

    chat(messages, model)
        |
        v
    ModelGuard (resolve / verify the generation model)
        |
        v
    Retriever (embed query -> exact cosine search -> context block)
        |
        v
    ChatClient.complete(system prompt + context + conversation)
        |
        v
    ChatResult

Retrieval is best-effort: when it fails the failure is logged here and the
question is answered without context.  Every collaborator is constructed
explicitly by build_service() -- there are no module-level singletons.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from langsmith import traceable
from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from legal_rag.chunking.chunker import TextChunker
from legal_rag.config import Settings
from legal_rag.embedding.embedder import EmbeddingProvider, OllamaEmbedder, OpenAIEmbedder
from legal_rag.embedding.vector_store import VectorStore
from legal_rag.errors import ProviderUnavailable
from legal_rag.generation.chat import (
    AnthropicChatClient,
    ChatClient,
    Message,
    OllamaChatClient,
    OpenAIChatClient,
)
from legal_rag.generation.prompts import EMPTY_REPLY, SYSTEM_PROMPT
from legal_rag.retrieval.model_guard import ModelGuard, ResolvedModel
from legal_rag.retrieval.retriever import RetrievalResult, RetrievalStatus, Retriever, format_context


# ---------------------------------------------------------------------------
# Result schemas
# ---------------------------------------------------------------------------

@dataclass
class IngestResult:
    added: int
    namespace: str

    def to_dict(self) -> dict:
        return {"added": self.added}


@dataclass
class ChatResult:
    """Output of a single chat turn."""

    content: str
    model: str
    retrieval_status: RetrievalStatus = RetrievalStatus.EMPTY
    context_documents: int = 0
    model_verified: bool = True
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "model": self.model,
            "context_documents": self.context_documents,
            "retrieval": self.retrieval_status.value,
            "model_verified": self.model_verified,
            "warnings": self.warnings,
        }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

def _log_ingest_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        f"[ChatService] Ingest attempt {retry_state.attempt_number} failed ({exc}); retrying"
    )


class ChatService:
    """
    The assistant's two public operations (ingest, chat) plus augment().

    Usage:
        service = build_service(load_settings())
        service.ingest("labor-code", [text])
        result = service.chat([{"role": "user", "content": "What is 13th month pay?"}])
        print(result.content)
    """

    def __init__(
        self,
        store: VectorStore,
        retriever: Retriever,
        chat_client: ChatClient,
        guard: ModelGuard,
        ingest_attempts: int = 3,
        ingest_max_wait: float = 10.0,
        default_namespace: Optional[str] = None,
    ) -> None:
        self.store = store
        self.retriever = retriever
        self.chat_client = chat_client
        self.guard = guard
        self.ingest_attempts = ingest_attempts
        self.ingest_max_wait = ingest_max_wait
        self.default_namespace = default_namespace

    # --- Ingestion ------------------------------------------------------------

    def ingest(
        self,
        namespace: Optional[str],
        texts: Sequence[str],
        metadata: Optional[dict] = None,
    ) -> IngestResult:
        """
        Chunk, embed and store `texts`.

        An unreachable embedding backend is retried with exponential
        backoff; upsert is atomic, so a failed attempt leaves no partial
        batch behind.  EmptyInput and every other error propagate at once.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.ingest_attempts),
            wait=wait_exponential(multiplier=1, max=self.ingest_max_wait),
            retry=retry_if_exception_type(ProviderUnavailable),
            before_sleep=_log_ingest_retry,
            reraise=True,
        )
        added = retrying(self.store.upsert, namespace, texts, metadata)
        ns = (namespace or "").strip() or "default"
        return IngestResult(added=added, namespace=ns)

    # --- Retrieval ------------------------------------------------------------

    def _retrieve(self, query: str, k: Optional[int], namespace: Optional[str]) -> RetrievalResult:
        if namespace is None:
            namespace = self.default_namespace
        result = self.retriever.retrieve(query, k=k, namespace=namespace)
        if result.failed:
            logger.warning(
                f"[ChatService] Retrieval failed, answering without context: {result.error}"
            )
        return result

    def augment(self, query: str, k: Optional[int] = None, namespace: Optional[str] = None) -> str:
        """Context block for `query`, or "" when nothing was retrieved."""
        return format_context(self._retrieve(query, k, namespace).documents)

    # --- Chat -----------------------------------------------------------------

    @traceable(name="rag_chat", run_type="chain")
    def chat(
        self,
        messages: Sequence[Message],
        model: Optional[str] = None,
        k: Optional[int] = None,
        namespace: Optional[str] = None,
    ) -> ChatResult:
        """
        Answer the latest user message, grounded on retrieved context when
        any is available.

        Raises:
            ModelNotInstalled: the resolved model is absent on the provider.
            ProviderUnavailable / ProviderError: the completion call failed.
        """
        resolved: ResolvedModel = self.guard.resolve(model)

        query = next(
            (m["content"] for m in reversed(messages) if m.get("role") == "user"), ""
        )
        retrieval = self._retrieve(query, k, namespace)
        context = format_context(retrieval.documents)

        prompt: list[Message] = [{"role": "system", "content": SYSTEM_PROMPT}]
        if context:
            prompt.append({"role": "system", "content": context})
        prompt.extend({"role": m["role"], "content": m["content"]} for m in messages)

        logger.info(
            f"[ChatService] model={resolved.name} | turns={len(messages)} | "
            f"context_docs={len(retrieval)} | retrieval={retrieval.status.value}"
        )
        reply = self.chat_client.complete(resolved.name, prompt)

        warnings = [resolved.warning] if resolved.warning else []
        if retrieval.failed:
            warnings.append("Knowledge base unavailable; answered without retrieved context")

        return ChatResult(
            content=reply.strip() or EMPTY_REPLY,
            model=resolved.name,
            retrieval_status=retrieval.status,
            context_documents=len(retrieval),
            model_verified=resolved.verified,
            warnings=warnings,
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_embedder(settings: Settings) -> EmbeddingProvider:
    cfg = settings.embedding
    if cfg.provider == "openai":
        return OpenAIEmbedder(model=cfg.model, batch_size=cfg.batch_size)
    return OllamaEmbedder(
        base_url=cfg.ollama_host,
        model=cfg.model,
        batch_size=cfg.batch_size,
        timeout=cfg.timeout,
    )


def build_chat_client(settings: Settings) -> ChatClient:
    cfg = settings.chat
    if cfg.provider == "ollama":
        return OllamaChatClient(
            base_url=cfg.ollama_host, temperature=cfg.temperature, timeout=cfg.timeout
        )
    if cfg.provider == "anthropic":
        return AnthropicChatClient(temperature=cfg.temperature, max_tokens=cfg.max_tokens)
    return OpenAIChatClient(temperature=cfg.temperature, max_tokens=cfg.max_tokens)


def build_service(
    settings: Settings,
    embedder: Optional[EmbeddingProvider] = None,
    chat_client: Optional[ChatClient] = None,
) -> ChatService:
    """
    Construct a fully wired ChatService.  Collaborators may be injected
    (tests, alternative providers); otherwise they come from `settings`.

    Raises InvalidConfiguration for bad chunk parameters before anything
    touches the network.
    """
    chunker = TextChunker(
        chunk_size=settings.chunking.chunk_size, overlap=settings.chunking.overlap
    )
    embedder = embedder or build_embedder(settings)
    chat_client = chat_client or build_chat_client(settings)

    store = VectorStore(embedder=embedder, chunker=chunker)
    retriever = Retriever(store=store, embedder=embedder, top_k=settings.retrieval.top_k)
    guard = ModelGuard(chat_client, fallback=settings.chat.model)

    logger.info(
        f"[ChatService] Ready | embedder={settings.embedding.provider}:{settings.embedding.model} "
        f"| chat={settings.chat.provider}:{settings.chat.model} "
        f"| chunk={chunker.chunk_size}/{chunker.overlap} | top_k={retriever.top_k}"
    )
    return ChatService(
        store=store,
        retriever=retriever,
        chat_client=chat_client,
        guard=guard,
        ingest_attempts=settings.ingest.retry_attempts,
        ingest_max_wait=settings.ingest.retry_max_wait,
        default_namespace=settings.retrieval.namespace,
    )
