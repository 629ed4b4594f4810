"""Shared utility functions used by the CLI and server."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def truncate_text(text: str, max_chars: int = 300) -> str:
    """Truncate text for display purposes."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


def load_json(path: str | Path) -> Any:
    with open(Path(path), "rb") as f:
        return orjson.loads(f.read())


def read_documents(path: str | Path) -> tuple[list[str], str | None]:
    """
    Read ingestible texts from a file.

    - .json: an upsert payload {"texts": [...], "namespace": "..."} or a
      bare list of strings
    - anything else: the whole file as one UTF-8 text

    Returns:
        (texts, namespace or None)
    """
    path = Path(path)
    if path.suffix.lower() == ".json":
        data = load_json(path)
        if isinstance(data, list):
            return [str(t) for t in data], None
        if isinstance(data, dict) and isinstance(data.get("texts"), list):
            return [str(t) for t in data["texts"]], data.get("namespace")
        raise ValueError(f"{path}: expected a list of strings or an object with 'texts'")
    return [path.read_text(encoding="utf-8")], None
