"""
Settings loading: config/config.yaml -> environment overrides -> pydantic.

Environment variables (also read from .env via python-dotenv) win over YAML:

  OLLAMA_HOST          embedding.ollama_host and chat.ollama_host
  EMBEDDING_PROVIDER   embedding.provider   (ollama | openai)
  OLLAMA_EMBED_MODEL   embedding.model      (only when the provider is ollama)
  CHAT_PROVIDER        chat.provider        (openai | ollama | anthropic)
  CHAT_MODEL           chat.model
  RAG_TOP_K            retrieval.top_k
  RAG_NAMESPACE        retrieval.namespace
  LOG_LEVEL            logging.level

A model left unset takes its provider's default (EMBED_MODELS / CHAT_MODELS).
Switching provider through the environment drops the model the YAML named
for the previous provider.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from legal_rag.chunking.chunker import CHUNK_OVERLAP, CHUNK_SIZE
from legal_rag.embedding.embedder import OLLAMA_EMBED_MODEL, OLLAMA_HOST, OPENAI_EMBED_MODEL
from legal_rag.retrieval.retriever import DEFAULT_TOP_K

CONFIG_PATH = Path("config/config.yaml")

EMBED_MODELS = {
    "ollama": OLLAMA_EMBED_MODEL,
    "openai": OPENAI_EMBED_MODEL,
}

CHAT_MODELS = {
    "openai": "gpt-4o-mini",
    "ollama": "llama3.2",
    "anthropic": "claude-haiku-4-5-20251001",
}


class EmbeddingSettings(BaseModel):
    provider: Literal["ollama", "openai"] = "ollama"
    model: Optional[str] = None
    ollama_host: str = OLLAMA_HOST
    batch_size: int = Field(default=64, gt=0)
    timeout: float = Field(default=60.0, gt=0)

    @model_validator(mode="after")
    def default_model_for_provider(self) -> "EmbeddingSettings":
        if not self.model:
            self.model = EMBED_MODELS[self.provider]
        return self


class ChatSettings(BaseModel):
    provider: Literal["openai", "ollama", "anthropic"] = "openai"
    model: Optional[str] = None          # fallback when a request names no model
    ollama_host: str = OLLAMA_HOST
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, gt=0)
    timeout: float = Field(default=120.0, gt=0)

    @model_validator(mode="after")
    def default_model_for_provider(self) -> "ChatSettings":
        if not self.model:
            self.model = CHAT_MODELS[self.provider]
        return self


class ChunkingSettings(BaseModel):
    # Range checks live in TextChunker so they surface as InvalidConfiguration
    chunk_size: int = CHUNK_SIZE
    overlap: int = CHUNK_OVERLAP


class RetrievalSettings(BaseModel):
    top_k: int = Field(default=DEFAULT_TOP_K, ge=1)
    # Searched when a request names no namespace; None searches everything
    namespace: Optional[str] = None


class IngestSettings(BaseModel):
    retry_attempts: int = Field(default=3, ge=1)
    retry_max_wait: float = Field(default=10.0, ge=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: Optional[str] = "logs/legal_rag.log"
    rotation: str = "10 MB"
    retention: str = "7 days"


class Settings(BaseModel):
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    ingest: IngestSettings = Field(default_factory=IngestSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


_DEFAULT_PROVIDERS = {"embedding": "ollama", "chat": "openai"}


# (env var, section, key); providers come first so model overrides see them
_ENV_OVERRIDES: list[tuple[str, str, str]] = [
    ("EMBEDDING_PROVIDER", "embedding", "provider"),
    ("CHAT_PROVIDER", "chat", "provider"),
    ("OLLAMA_HOST", "embedding", "ollama_host"),
    ("OLLAMA_HOST", "chat", "ollama_host"),
    ("OLLAMA_EMBED_MODEL", "embedding", "model"),
    ("CHAT_MODEL", "chat", "model"),
    ("RAG_TOP_K", "retrieval", "top_k"),
    ("RAG_NAMESPACE", "retrieval", "namespace"),
    ("LOG_LEVEL", "logging", "level"),
]


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def _apply_env(raw: dict[str, Any]) -> dict[str, Any]:
    for env_name, section, key in _ENV_OVERRIDES:
        value = os.getenv(env_name)
        if value is None or not value.strip():
            continue
        value = value.strip()
        block = raw.get(section) or {}
        raw[section] = block
        if key == "provider":
            current = block.get("provider") or _DEFAULT_PROVIDERS[section]
            if current != value:
                block.pop("model", None)
        if env_name == "OLLAMA_EMBED_MODEL" and block.get("provider", "ollama") != "ollama":
            continue
        block[key] = value
    return raw


def load_settings(path: str | Path = CONFIG_PATH, use_dotenv: bool = True) -> Settings:
    """Build Settings from YAML (optional file) plus environment overrides."""
    if use_dotenv:
        load_dotenv()
    raw = _apply_env(_load_yaml(Path(path)))
    return Settings.model_validate(raw)
