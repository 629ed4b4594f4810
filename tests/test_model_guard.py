"""Tests for model resolution and availability checks."""
from __future__ import annotations

import pytest

from legal_rag.errors import ModelNotInstalled, ProviderError, ProviderUnavailable
from legal_rag.retrieval.model_guard import ModelGuard, resolve_model

from conftest import FakeChatClient


def test_blank_request_uses_fallback():
    resolved = resolve_model("", {"a", "b"}, "b")
    assert resolved.name == "b"
    assert resolved.used_fallback
    assert resolved.verified


def test_whitespace_request_uses_fallback():
    assert resolve_model("   ", {"a", "b"}, "b").name == "b"
    assert resolve_model(None, {"a", "b"}, "b").name == "b"


def test_installed_request_wins():
    resolved = resolve_model("a", {"a", "b"}, "b")
    assert resolved.name == "a"
    assert not resolved.used_fallback


def test_missing_model_is_rejected():
    with pytest.raises(ModelNotInstalled) as excinfo:
        resolve_model("x", {"a", "b"}, "b")
    assert excinfo.value.model == "x"
    assert excinfo.value.installed == ["a", "b"]
    assert "'x'" in str(excinfo.value)


def test_missing_fallback_is_rejected():
    with pytest.raises(ModelNotInstalled) as excinfo:
        resolve_model("", {"a"}, "b")
    assert excinfo.value.model == "b"


def test_unknown_installed_set_is_optimistic():
    resolved = resolve_model("x", None, "b")
    assert resolved.name == "x"
    assert not resolved.verified
    assert resolved.warning


@pytest.mark.parametrize("error", [ProviderUnavailable("down"), ProviderError("401")])
def test_guard_listing_failure_is_not_fatal(error):
    client = FakeChatClient()
    client.list_error = error
    resolved = ModelGuard(client, fallback="gpt-4o-mini").resolve(None)
    assert resolved.name == "gpt-4o-mini"
    assert not resolved.verified


def test_guard_adds_install_hint():
    guard = ModelGuard(FakeChatClient(models={"llama3.2"}), fallback="llama3.2")
    with pytest.raises(ModelNotInstalled) as excinfo:
        guard.resolve("mistral")
    assert excinfo.value.hint == "Install it with: fake pull mistral"
    assert "fake pull mistral" in str(excinfo.value)


def test_guard_requires_fallback():
    with pytest.raises(ValueError):
        ModelGuard(FakeChatClient(), fallback=" ")
