"""
Model Guard
------------
Resolves which generation model a chat request uses and verifies that the
provider actually has it before any prompt is sent.

  requested "" / None     -> fallback model
  resolved in installed   -> Resolved (verified=True)
  resolved not installed  -> Rejected: ModelNotInstalled (not retryable)
  listing call failed     -> Resolved (verified=False) with a warning; the
                             completion call will fail clearly if the
                             model really is missing
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from loguru import logger

from legal_rag.errors import ModelNotInstalled, ProviderError, ProviderUnavailable


@dataclass(frozen=True)
class ResolvedModel:
    name: str
    requested: str = ""
    used_fallback: bool = False
    verified: bool = True
    warning: Optional[str] = None


def resolve_model(
    requested: Optional[str],
    installed: Optional[Iterable[str]],
    fallback: str,
) -> ResolvedModel:
    """
    Pick the model for a request and check it against `installed`.

    Args:
        requested: Model asked for by the caller; blank means "use fallback".
        installed: Installed model names, or None if they could not be listed.
        fallback: Configured default model.

    Raises:
        ModelNotInstalled: the resolved name is confirmed absent.
    """
    wanted = (requested or "").strip()
    used_fallback = not wanted
    name = fallback.strip() if used_fallback else wanted

    if installed is None:
        return ResolvedModel(
            name=name,
            requested=wanted,
            used_fallback=used_fallback,
            verified=False,
            warning=f"Could not list installed models; proceeding with '{name}' unverified",
        )

    installed_set = frozenset(installed)
    if name not in installed_set:
        raise ModelNotInstalled(name, installed_set)

    return ResolvedModel(name=name, requested=wanted, used_fallback=used_fallback)


class ModelLister(Protocol):
    def list_models(self) -> set[str]: ...

    def install_hint(self, model: str) -> str: ...


class ModelGuard:
    """
    Binds resolve_model() to a chat client's model listing.

    Usage:
        guard = ModelGuard(chat_client, fallback="gpt-4o-mini")
        resolved = guard.resolve(request.model)
    """

    def __init__(self, lister: ModelLister, fallback: str) -> None:
        if not fallback or not fallback.strip():
            raise ValueError("fallback model name must not be empty")
        self.lister = lister
        self.fallback = fallback.strip()

    def installed_models(self) -> Optional[set[str]]:
        """Installed models, or None when the listing call fails."""
        try:
            return set(self.lister.list_models())
        except (ProviderUnavailable, ProviderError) as exc:
            logger.warning(f"[ModelGuard] Model listing failed: {exc}")
            return None

    def resolve(self, requested: Optional[str] = None) -> ResolvedModel:
        installed = self.installed_models()
        try:
            resolved = resolve_model(requested, installed, self.fallback)
        except ModelNotInstalled as exc:
            raise ModelNotInstalled(
                exc.model, exc.installed, hint=self.lister.install_hint(exc.model)
            ) from None

        if resolved.warning:
            logger.warning(f"[ModelGuard] {resolved.warning}")
        else:
            logger.debug(
                f"[ModelGuard] Resolved model={resolved.name} "
                f"(fallback={resolved.used_fallback})"
            )
        return resolved
