"""
Chat Completion Clients
------------------------
Three clients with an identical interface:

  OllamaChatClient    -- local Ollama server (/api/chat, /api/tags)
  OpenAIChatClient    -- OpenAI (gpt-4o-mini, gpt-4o)
  AnthropicChatClient -- Anthropic Claude models

Each exposes:
  complete(model, messages) -> reply text
  list_models()             -> installed / available model names
  install_hint(model)       -> operator instruction for a missing model

Transport failures raise ProviderUnavailable; every other failure raises
ProviderError.  Neither is retried here.
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence

import httpx
from langsmith import traceable
from loguru import logger

from legal_rag.embedding.embedder import OLLAMA_HOST
from legal_rag.errors import ProviderError, ProviderUnavailable

Message = dict[str, str]


class ChatClient(Protocol):
    provider: str

    def complete(self, model: str, messages: Sequence[Message]) -> str: ...

    def list_models(self) -> set[str]: ...

    def install_hint(self, model: str) -> str: ...


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

class OllamaChatClient:
    """Non-streaming chat against a local Ollama server."""

    provider = "ollama"

    def __init__(
        self,
        base_url: str = OLLAMA_HOST,
        temperature: float = 0.2,
        timeout: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.temperature = temperature
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            data = response.json()
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderUnavailable(f"Ollama not reachable at {self.base_url}: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Ollama {path} failed ({exc.response.status_code}): {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Ollama {path} request failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderError(f"Ollama {path} returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"Malformed Ollama {path} response: expected an object")
        return data

    @traceable(name="complete_ollama", run_type="llm")
    def complete(self, model: str, messages: Sequence[Message]) -> str:
        payload = {
            "model": model,
            "messages": list(messages),
            "stream": False,
            "options": {"temperature": self.temperature},
        }
        data = self._request("POST", "/api/chat", json=payload)
        logger.info(
            f"[OllamaChat] Done | model={model} | "
            f"prompt={data.get('prompt_eval_count', 0)} completion={data.get('eval_count', 0)}"
        )
        message = data.get("message") or {}
        if not isinstance(message, dict):
            raise ProviderError("Malformed Ollama /api/chat response: 'message' is not an object")
        content = message.get("content") or ""
        if not isinstance(content, str):
            raise ProviderError("Malformed Ollama /api/chat response: 'content' is not a string")
        return content

    def list_models(self) -> set[str]:
        """
        Names from /api/tags.  "name:latest" is also listed as "name" since
        Ollama resolves an untagged name to :latest.
        """
        data = self._request("GET", "/api/tags")
        entries = data.get("models") or []
        if not isinstance(entries, list):
            raise ProviderError("Malformed Ollama /api/tags response: 'models' is not a list")
        names: set[str] = set()
        for entry in entries:
            if not isinstance(entry, dict):
                raise ProviderError("Malformed Ollama /api/tags response: model entry is not an object")
            name = entry.get("name") or entry.get("model")
            if not isinstance(name, str) or not name:
                continue
            names.add(name)
            if name.endswith(":latest"):
                names.add(name[: -len(":latest")])
        return names

    def install_hint(self, model: str) -> str:
        return f"Install it with: ollama pull {model}"

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class OpenAIChatClient:
    """Chat completions via the OpenAI SDK."""

    provider = "openai"

    def __init__(self, temperature: float = 0.2, max_tokens: int = 1024, client=None) -> None:
        if client is None:
            from openai import OpenAI  # lazy import keeps import graph clean
            client = OpenAI()
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @traceable(name="complete_openai", run_type="llm")
    def complete(self, model: str, messages: Sequence[Message]) -> str:
        import openai

        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=list(messages),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except (openai.APIConnectionError, openai.APITimeoutError) as exc:
            raise ProviderUnavailable(f"OpenAI unreachable: {exc}") from exc
        except openai.OpenAIError as exc:
            raise ProviderError(f"OpenAI chat failed: {exc}") from exc

        usage = response.usage
        if usage is not None:
            logger.info(
                f"[OpenAIChat] Done | model={model} | "
                f"prompt={usage.prompt_tokens} completion={usage.completion_tokens}"
            )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def list_models(self) -> set[str]:
        import openai

        try:
            return {m.id for m in self._client.models.list()}
        except (openai.APIConnectionError, openai.APITimeoutError) as exc:
            raise ProviderUnavailable(f"OpenAI unreachable: {exc}") from exc
        except openai.OpenAIError as exc:
            raise ProviderError(f"OpenAI model listing failed: {exc}") from exc

    def install_hint(self, model: str) -> str:
        return "Check the model name and that your OPENAI_API_KEY has access to it"


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

class AnthropicChatClient:
    """
    Chat via the Anthropic SDK.

    Anthropic takes system prompts as a separate `system` parameter, so
    system messages are lifted out of the message list here.
    """

    provider = "anthropic"

    def __init__(self, temperature: float = 0.2, max_tokens: int = 1024, client=None) -> None:
        if client is None:
            from anthropic import Anthropic  # lazy import
            client = Anthropic()
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @traceable(name="complete_anthropic", run_type="llm")
    def complete(self, model: str, messages: Sequence[Message]) -> str:
        import anthropic

        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        turns = [m for m in messages if m["role"] != "system"]
        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=turns,
            )
        except (anthropic.APIConnectionError, anthropic.APITimeoutError) as exc:
            raise ProviderUnavailable(f"Anthropic unreachable: {exc}") from exc
        except anthropic.AnthropicError as exc:
            raise ProviderError(f"Anthropic chat failed: {exc}") from exc

        logger.info(
            f"[AnthropicChat] Done | model={model} | "
            f"input={response.usage.input_tokens} output={response.usage.output_tokens}"
        )
        return response.content[0].text if response.content else ""

    def list_models(self) -> set[str]:
        import anthropic

        try:
            return {m.id for m in self._client.models.list()}
        except (anthropic.APIConnectionError, anthropic.APITimeoutError) as exc:
            raise ProviderUnavailable(f"Anthropic unreachable: {exc}") from exc
        except anthropic.AnthropicError as exc:
            raise ProviderError(f"Anthropic model listing failed: {exc}") from exc

    def install_hint(self, model: str) -> str:
        return "Check the model name and that your ANTHROPIC_API_KEY has access to it"
