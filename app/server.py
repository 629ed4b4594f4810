"""
Philippine Legal Information Assistant - Web API Server
--------------------------------------------------------
FastAPI server around ChatService.

Endpoints:
  GET  /api/health      -> service status, corpus stats, configured models
  GET  /api/models      -> installed chat models on the configured provider
  POST /api/rag/upsert  -> ingest texts into a namespace
  POST /api/chat        -> answer a conversation, grounded on retrieved context

Run from the project root:
    uvicorn app.server:app --reload --port 8000

The corpus is in-memory: it lives as long as the server process.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import partial
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from legal_rag.chunking.schemas import MetadataValue
from legal_rag.config import Settings, load_settings
from legal_rag.errors import (
    DimensionMismatch,
    EmptyInput,
    ModelNotInstalled,
    ProviderError,
    ProviderUnavailable,
    RAGError,
)
from legal_rag.serving.pipeline import ChatService, build_service
from legal_rag.utils.logger import setup_logger


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)
    model: Optional[str] = None
    k: Optional[int] = Field(default=None, ge=1, le=50)
    namespace: Optional[str] = None

    @field_validator("messages")
    @classmethod
    def validate_has_user_turn(cls, v: list[ChatMessage]) -> list[ChatMessage]:
        if not any(m.role == "user" and m.content.strip() for m in v):
            raise ValueError("messages must contain at least one non-empty user message")
        return v


class ChatResponse(BaseModel):
    content: str
    model: str
    context_documents: int
    retrieval: str
    model_verified: bool
    warnings: list[str]


class UpsertRequest(BaseModel):
    # Shape-checked here; blank strings are filtered by the store
    texts: list[str] = Field(default_factory=list)
    namespace: Optional[str] = None
    metadata: Optional[dict[str, MetadataValue]] = None


class UpsertResponse(BaseModel):
    added: int


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def _service(request: Request) -> ChatService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return service


def create_app(settings: Optional[Settings] = None, service: Optional[ChatService] = None) -> FastAPI:
    """
    Build the FastAPI app.  A pre-built `service` (tests) is used as-is;
    otherwise one is constructed from `settings` at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if service is not None:
            app.state.service = service
        else:
            cfg = settings or load_settings()
            setup_logger(cfg.logging)
            logger.info("[Server] Building chat service...")
            app.state.service = build_service(cfg)
        yield
        app.state.service = None
        logger.info("[Server] Service unloaded.")

    app = FastAPI(
        title="Philippine Legal Information Assistant API",
        description="Retrieval-augmented chat over an ingested legal corpus",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Error mapping --------------------------------------------------------

    @app.exception_handler(EmptyInput)
    async def empty_input_handler(request: Request, exc: EmptyInput):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ModelNotInstalled)
    async def model_not_installed_handler(request: Request, exc: ModelNotInstalled):
        return JSONResponse(
            status_code=400,
            content={
                "error": str(exc),
                "model": exc.model,
                "installed": exc.installed,
                "hint": exc.hint,
            },
        )

    @app.exception_handler(ProviderUnavailable)
    async def provider_unavailable_handler(request: Request, exc: ProviderUnavailable):
        logger.error(f"[API] Provider unavailable: {exc}")
        return JSONResponse(status_code=503, content={"error": str(exc)})

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        logger.error(f"[API] Provider error: {exc}")
        return JSONResponse(status_code=502, content={"error": str(exc)})

    @app.exception_handler(DimensionMismatch)
    async def dimension_mismatch_handler(request: Request, exc: DimensionMismatch):
        logger.critical(f"[API] Corpus integrity error: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(RAGError)
    async def rag_error_handler(request: Request, exc: RAGError):
        logger.error(f"[API] {exc.__class__.__name__}: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    # --- Routes ---------------------------------------------------------------

    @app.get("/api/health")
    async def health(request: Request):
        """Return service status, corpus stats and the configured models."""
        svc = _service(request)
        return {
            "status": "ok",
            "corpus": svc.store.stats(),
            "chat_provider": svc.chat_client.provider,
            "default_model": svc.guard.fallback,
            "top_k": svc.retriever.top_k,
        }

    @app.get("/api/models")
    async def models(request: Request):
        svc = _service(request)
        loop = asyncio.get_running_loop()
        installed = await loop.run_in_executor(None, svc.guard.installed_models)
        return {
            "provider": svc.chat_client.provider,
            "default_model": svc.guard.fallback,
            "installed": sorted(installed) if installed is not None else None,
        }

    @app.post("/api/rag/upsert", response_model=UpsertResponse)
    async def upsert(body: UpsertRequest, request: Request):
        """Chunk, embed and store texts under a namespace."""
        svc = _service(request)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None, partial(svc.ingest, body.namespace, body.texts, body.metadata)
        )
        return UpsertResponse(added=result.added)

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(body: ChatRequest, request: Request):
        """
        Answer the conversation.  The blocking pipeline call runs in a
        thread-pool executor to avoid stalling the event loop.
        """
        svc = _service(request)
        messages = [{"role": m.role, "content": m.content} for m in body.messages]
        logger.info(
            f"[API] Chat | model={body.model or svc.guard.fallback} | "
            f"turns={len(messages)} | k={body.k}"
        )
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None,
            partial(svc.chat, messages, model=body.model, k=body.k, namespace=body.namespace),
        )
        return ChatResponse(**result.to_dict())

    return app


app = create_app()
