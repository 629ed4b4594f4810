"""Tests for settings loading (YAML + environment overrides)."""
from __future__ import annotations

from pathlib import Path

import pytest
from loguru import logger
from pydantic import ValidationError

from legal_rag.config import LoggingSettings, load_settings
from legal_rag.utils.logger import setup_logger


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OLLAMA_HOST", "OLLAMA_EMBED_MODEL", "EMBEDDING_PROVIDER", "CHAT_PROVIDER",
                 "CHAT_MODEL", "RAG_TOP_K", "RAG_NAMESPACE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path):
    settings = load_settings(tmp_path / "missing.yaml", use_dotenv=False)
    assert settings.chunking.chunk_size == 800
    assert settings.chunking.overlap == 120
    assert settings.retrieval.top_k == 6
    assert settings.embedding.provider == "ollama"
    assert settings.embedding.model == "nomic-embed-text"
    assert settings.chat.model == "gpt-4o-mini"


def test_yaml_values_are_read(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("chat:\n  provider: ollama\n  model: llama3.2\nretrieval:\n  top_k: 4\n", encoding="utf-8")
    settings = load_settings(path, use_dotenv=False)
    assert settings.chat.provider == "ollama"
    assert settings.chat.model == "llama3.2"
    assert settings.retrieval.top_k == 4


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("chat:\n  model: llama3.2\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_MODEL", "mistral")
    monkeypatch.setenv("OLLAMA_HOST", " http://gpu-box:11434 ")
    monkeypatch.setenv("RAG_TOP_K", "9")
    settings = load_settings(path, use_dotenv=False)
    assert settings.chat.model == "mistral"
    assert settings.embedding.ollama_host == "http://gpu-box:11434"
    assert settings.chat.ollama_host == "http://gpu-box:11434"
    assert settings.retrieval.top_k == 9


def test_invalid_values_are_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("chat:\n  provider: carrier-pigeon\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_settings(path, use_dotenv=False)


def test_shipped_config_is_valid():
    settings = load_settings(Path(__file__).parent.parent / "config" / "config.yaml", use_dotenv=False)
    assert settings.chunking.overlap < settings.chunking.chunk_size


SHIPPED = Path(__file__).parent.parent / "config" / "config.yaml"


def test_switching_provider_in_env_uses_that_providers_models(monkeypatch):
    monkeypatch.setenv("EMBEDDING_PROVIDER", "openai")
    monkeypatch.setenv("CHAT_PROVIDER", "ollama")
    settings = load_settings(SHIPPED, use_dotenv=False)
    assert settings.embedding.provider == "openai"
    assert settings.embedding.model == "text-embedding-3-small"
    assert settings.chat.provider == "ollama"
    assert settings.chat.model == "llama3.2"


def test_explicit_model_survives_provider_switch(monkeypatch):
    monkeypatch.setenv("CHAT_PROVIDER", "anthropic")
    monkeypatch.setenv("CHAT_MODEL", "claude-sonnet-4-6")
    settings = load_settings(SHIPPED, use_dotenv=False)
    assert settings.chat.provider == "anthropic"
    assert settings.chat.model == "claude-sonnet-4-6"


def test_ollama_embed_model_ignored_for_openai(monkeypatch):
    monkeypatch.setenv("EMBEDDING_PROVIDER", "openai")
    monkeypatch.setenv("OLLAMA_EMBED_MODEL", "mxbai-embed-large")
    settings = load_settings(SHIPPED, use_dotenv=False)
    assert settings.embedding.model == "text-embedding-3-small"


@pytest.mark.parametrize(
    "provider,model",
    [("openai", "gpt-4o-mini"), ("ollama", "llama3.2"), ("anthropic", "claude-haiku-4-5-20251001")],
)
def test_chat_model_defaults_per_provider(tmp_path, provider, model):
    path = tmp_path / "config.yaml"
    path.write_text(f"chat:\n  provider: {provider}\n", encoding="utf-8")
    assert load_settings(path, use_dotenv=False).chat.model == model


def test_same_provider_in_env_keeps_yaml_model(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("chat:\n  provider: ollama\n  model: qwen2.5\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_PROVIDER", "ollama")
    assert load_settings(path, use_dotenv=False).chat.model == "qwen2.5"


def test_namespace_override(monkeypatch):
    assert load_settings(SHIPPED, use_dotenv=False).retrieval.namespace is None
    monkeypatch.setenv("RAG_NAMESPACE", "labor-code")
    assert load_settings(SHIPPED, use_dotenv=False).retrieval.namespace == "labor-code"


def test_setup_logger_writes_file_sink(tmp_path):
    log_file = tmp_path / "logs" / "rag.log"
    setup_logger(LoggingSettings(level="debug", file=str(log_file)))
    logger.info("ingested labor-code")
    logger.remove()
    assert "ingested labor-code" in log_file.read_text(encoding="utf-8")
