"""
Legal RAG Assistant - CLI Entry Point
--------------------------------------
Typer commands around ChatService.

Usage:
    python -m legal_rag.main chunk docs/labor_code.txt          # Preview chunking (offline)
    python -m legal_rag.main chat --docs docs/ -q "..."         # Ingest, then single-shot
    python -m legal_rag.main chat --docs docs/labor_code.txt    # Ingest, then interactive
    python -m legal_rag.main models                             # Installed chat models
    python -m legal_rag.main serve --port 8000                  # HTTP API

The corpus is in-memory, so `chat` ingests its --docs on every run.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger
from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from legal_rag.chunking.chunker import TextChunker
from legal_rag.config import CONFIG_PATH, Settings, load_settings
from legal_rag.errors import EmptyInput, ModelNotInstalled, ProviderError, ProviderUnavailable
from legal_rag.serving.pipeline import ChatResult, ChatService, build_service
from legal_rag.utils.helpers import read_documents, truncate_text
from legal_rag.utils.logger import setup_logger

app = typer.Typer(
    name="legal-rag",
    help="Philippine Legal Information Assistant - RAG chat CLI",
    add_completion=False,
)
console = Console()

_DOC_SUFFIXES = {".txt", ".md", ".json"}


# --- Helpers ------------------------------------------------------------------

def _settings(config: str) -> Settings:
    settings = load_settings(config)
    setup_logger(settings.logging)
    return settings


def _expand_paths(paths: List[Path]) -> list[Path]:
    files: list[Path] = []
    for p in paths:
        if p.is_dir():
            files.extend(sorted(f for f in p.rglob("*") if f.suffix.lower() in _DOC_SUFFIXES))
        elif p.exists():
            files.append(p)
        else:
            console.print(f"[red]Not found: {p}[/red]")
            raise typer.Exit(1)
    return files


def _ingest_files(service: ChatService, files: list[Path], namespace: Optional[str]) -> int:
    total = 0
    for f in files:
        texts, file_ns = read_documents(f)
        try:
            result = service.ingest(namespace or file_ns, texts, metadata={"source": f.name})
        except EmptyInput:
            logger.warning(f"[CLI] Skipping empty document: {f}")
            continue
        total += result.added
        console.print(
            f"[green][OK][/green] {f.name}: {result.added} chunk(s) -> [cyan]{result.namespace}[/cyan]"
        )
    return total


# --- Commands -----------------------------------------------------------------

@app.command()
def chunk(
    paths: List[Path] = typer.Argument(..., help="Files or directories to chunk"),
    config: str = typer.Option(str(CONFIG_PATH), "--config", "-c", help="Path to config YAML"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", help="Override chunk size"),
    overlap: Optional[int] = typer.Option(None, "--overlap", help="Override chunk overlap"),
) -> None:
    """Preview how documents are chunked. Makes no network calls."""
    settings = load_settings(config)
    chunker = TextChunker(
        chunk_size=chunk_size or settings.chunking.chunk_size,
        overlap=settings.chunking.overlap if overlap is None else overlap,
    )

    table = Table("File", "Chunk", "Chars", "Preview", box=box.SIMPLE, header_style="bold dim")
    total = 0
    for f in _expand_paths(paths):
        texts, _ = read_documents(f)
        for text in texts:
            for i, piece in enumerate(chunker.split(text)):
                table.add_row(f.name, str(i), str(len(piece)), truncate_text(piece.replace("\n", " "), 60))
                total += 1
    console.print(table)
    console.print(
        f"[dim]{total} chunk(s) | size={chunker.chunk_size} overlap={chunker.overlap}[/dim]"
    )


@app.command()
def chat(
    docs: List[Path] = typer.Option([], "--docs", "-d", help="Files/directories to ingest first"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Single query (omit for interactive loop)"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Namespace for ingest and search"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Generation model (default from config)"),
    top_k: Optional[int] = typer.Option(None, "--top-k", help="Passages to retrieve"),
    config: str = typer.Option(str(CONFIG_PATH), "--config", "-c", help="Path to config YAML"),
    json_out: bool = typer.Option(False, "--json", help="Print result as JSON (single-query mode only)"),
) -> None:
    """Ingest documents, then answer questions grounded on them."""
    settings = _settings(config)
    service = build_service(settings)

    if docs:
        with console.status("[cyan]Ingesting documents...[/cyan]"):
            try:
                added = _ingest_files(service, _expand_paths(docs), namespace)
            except (ProviderUnavailable, ProviderError) as exc:
                console.print(f"[red]Embedding provider failed:[/red] {exc}")
                raise typer.Exit(1)
        console.print(f"[green][OK] Corpus ready[/green] | {added} chunk(s)")

    def ask(messages: list[dict]) -> Optional[ChatResult]:
        try:
            return service.chat(messages, model=model, k=top_k, namespace=namespace)
        except ModelNotInstalled as exc:
            console.print(Panel(str(exc), title="[red]Model not installed[/red]", border_style="red"))
            raise typer.Exit(1)
        except (ProviderUnavailable, ProviderError) as exc:
            console.print(f"[red]Chat provider failed:[/red] {exc}")
            return None

    # --- Single-shot mode -----------------------------------------------------
    if query:
        result = ask([{"role": "user", "content": query}])
        if result is None:
            raise typer.Exit(1)
        if json_out:
            console.print_json(json.dumps(result.to_dict()))
        else:
            _print_result(result)
        return

    # --- Interactive loop -----------------------------------------------------
    console.print("[bold]Ask about Philippine laws, rights and procedures.[/bold]")
    console.print("[dim]Type 'exit', 'quit', or press Ctrl+C to quit.[/dim]\n")

    history: list[dict] = []
    while True:
        try:
            raw = console.input("[bold cyan]You[/bold cyan] > ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye.[/dim]")
            break

        if not raw:
            continue
        if raw.lower() in {"exit", "quit", "q"}:
            console.print("[dim]Goodbye.[/dim]")
            break

        history.append({"role": "user", "content": raw})
        with console.status("[cyan]Thinking...[/cyan]"):
            result = ask(history)
        if result is None:
            history.pop()
            continue
        history.append({"role": "assistant", "content": result.content})
        _print_result(result)


def _print_result(result: ChatResult) -> None:
    """Render a ChatResult to the terminal using Rich."""
    console.print()
    console.print(
        Panel(
            Markdown(result.content),
            title=f"[bold green]Answer[/bold green] [dim]({result.model})[/dim]",
            border_style="green",
            expand=True,
        )
    )
    for warning in result.warnings:
        console.print(f"[yellow]{warning}[/yellow]")
    console.print(
        f"[dim]context={result.context_documents} passage(s) | "
        f"retrieval={result.retrieval_status.value}[/dim]\n"
    )


@app.command()
def models(
    config: str = typer.Option(str(CONFIG_PATH), "--config", "-c", help="Path to config YAML"),
) -> None:
    """List installed chat models and check the configured default."""
    settings = _settings(config)
    service = build_service(settings)
    installed = service.guard.installed_models()
    if installed is None:
        console.print(f"[yellow]Could not list models for provider '{service.chat_client.provider}'.[/yellow]")
        raise typer.Exit(1)

    table = Table("Model", "Default", box=box.SIMPLE, header_style="bold dim")
    for name in sorted(installed):
        table.add_row(name, "*" if name == service.guard.fallback else "")
    console.print(table)

    if service.guard.fallback not in installed:
        console.print(
            f"[red]Default model '{service.guard.fallback}' is not installed.[/red] "
            f"{service.chat_client.install_hint(service.guard.fallback)}"
        )
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("app.server:app", host=host, port=port, reload=reload)


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
