"""Tests for the FastAPI server: routing, validation and error mapping."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.server import create_app
from legal_rag.errors import DimensionMismatch, ProviderError, ProviderUnavailable

LABOR = "Employees are entitled to thirteenth month pay not later than December 24."


@pytest.fixture
def client(service):
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


def chat_body(text: str, **extra) -> dict:
    return {"messages": [{"role": "user", "content": text}], **extra}


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["corpus"]["total_chunks"] == 0
    assert body["default_model"] == "gpt-4o-mini"


def test_upsert_then_chat_uses_context(client, chat_client):
    response = client.post("/api/rag/upsert", json={"texts": [LABOR], "namespace": "labor"})
    assert response.status_code == 200
    assert response.json() == {"added": 1}

    response = client.post("/api/chat", json=chat_body("When is thirteenth month pay due?"))
    assert response.status_code == 200
    body = response.json()
    assert body["content"] == chat_client.reply
    assert body["context_documents"] == 1
    assert body["retrieval"] == "ok"
    assert LABOR in chat_client.calls[0][1][1]["content"]


def test_upsert_empty_is_400(client):
    response = client.post("/api/rag/upsert", json={"texts": ["  "]})
    assert response.status_code == 400
    assert "non-empty" in response.json()["error"]


def test_upsert_rejects_malformed_payload(client):
    assert client.post("/api/rag/upsert", json={"texts": "not-a-list"}).status_code == 422


def test_upsert_passes_metadata_through(client, service):
    body = {"texts": [LABOR], "namespace": "labor", "metadata": {"source": "pd-851.txt", "year": 1975}}
    assert client.post("/api/rag/upsert", json=body).status_code == 200
    document = service.retriever.retrieve("thirteenth month pay").documents[0]
    assert document.metadata == {"source": "pd-851.txt", "year": 1975, "namespace": "labor"}


def test_upsert_rejects_nested_metadata(client):
    body = {"texts": [LABOR], "metadata": {"source": {"file": "pd-851.txt"}}}
    assert client.post("/api/rag/upsert", json=body).status_code == 422


@pytest.mark.parametrize(
    "body",
    [
        {"messages": []},
        {"messages": [{"role": "assistant", "content": "hi"}]},
        {"messages": [{"role": "wizard", "content": "hi"}]},
        chat_body("hi", k=0),
    ],
)
def test_chat_rejects_invalid_payload(client, body):
    assert client.post("/api/chat", json=body).status_code == 422


def test_chat_model_not_installed(client):
    response = client.post("/api/chat", json=chat_body("hi", model="mistral"))
    assert response.status_code == 400
    body = response.json()
    assert body["model"] == "mistral"
    assert body["installed"] == ["gpt-4o-mini", "llama3.2"]
    assert "fake pull mistral" in body["hint"]


@pytest.mark.parametrize(
    "error,status",
    [(ProviderUnavailable("down"), 503), (ProviderError("rate limited"), 502)],
)
def test_chat_provider_failures(client, chat_client, error, status):
    chat_client.complete_error = error
    response = client.post("/api/chat", json=chat_body("hi"))
    assert response.status_code == status
    assert response.json()["error"]


def test_chat_survives_embedding_outage(client, embedder, chat_client):
    client.post("/api/rag/upsert", json={"texts": [LABOR]})
    embedder.fail_with = ProviderUnavailable("down")
    embedder.fail_times = -1
    response = client.post("/api/chat", json=chat_body("thirteenth month pay"))
    assert response.status_code == 200
    assert response.json()["retrieval"] == "failed"


def test_dimension_mismatch_is_500(client, service, monkeypatch):
    def broken(*args, **kwargs):
        raise DimensionMismatch(26, 3)

    monkeypatch.setattr(service.store, "search", broken)
    client.post("/api/rag/upsert", json={"texts": [LABOR]})
    response = client.post("/api/chat", json=chat_body("thirteenth month pay"))
    assert response.status_code == 500


def test_models_endpoint(client, chat_client):
    body = client.get("/api/models").json()
    assert body["installed"] == ["gpt-4o-mini", "llama3.2"]
    chat_client.list_error = ProviderUnavailable("down")
    assert client.get("/api/models").json()["installed"] is None
