"""
Error taxonomy for the legal RAG assistant.

Every failure the retrieval core can raise derives from RAGError so the
serving layer can map them to HTTP statuses in one place.

  InvalidConfiguration  -- bad chunk parameters; fatal, never retried
  EmptyInput            -- caller sent nothing ingestible
  ProviderUnavailable   -- embedding/chat backend unreachable (connect/timeout)
  ProviderError         -- backend answered with a non-success or malformed reply
  DimensionMismatch     -- corpus integrity violation; must halt, never degrade
  ModelNotInstalled     -- requested generation model is absent on the provider
"""
from __future__ import annotations


class RAGError(Exception):
    """Base class for all errors raised by legal_rag."""


class InvalidConfiguration(RAGError, ValueError):
    pass


class EmptyInput(RAGError, ValueError):
    pass


class ProviderUnavailable(RAGError):
    pass


class ProviderError(RAGError):
    pass


class DimensionMismatch(RAGError):
    def __init__(self, expected: int, actual: int, where: str = "vector store") -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch in {where}: expected {expected}, got {actual}"
        )


class ModelNotInstalled(RAGError):
    """The resolved model name is not among the provider's installed models."""

    def __init__(self, model: str, installed: set[str] | frozenset[str], hint: str = "") -> None:
        self.model = model
        self.installed = sorted(installed)
        self.hint = hint
        message = f"Model '{model}' is not installed. Installed models: {self.installed}"
        if hint:
            message += f". {hint}"
        super().__init__(message)
