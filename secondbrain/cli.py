"""
CLI interface for secondbrain.

Usage:
    secondbrain index
    secondbrain related projects/idea.md
    secondbrain summarize journal/2026-10-01.md --append
    secondbrain chat --note projects/idea.md
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Optional

import typer
from typing_extensions import Annotated

from .assistant import NoteAssistant, append_summary_callout, render_related
from .chat import ChatSession
from .errors import SecondBrainError
from .indexer import Indexer
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode, remove_ops_log
from .state import AppState
from .types import NoteState, UsageRecord

logger = logging.getLogger(__name__)

# Configure quiet mode by default (suppress verbose library output)
# Set SECONDBRAIN_VERBOSE=1 to enable debug mode via environment
if os.environ.get("SECONDBRAIN_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"secondbrain {version('secondbrain')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None
_vault_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _vault_callback(value: Optional[Path]):
    global _vault_override
    _vault_override = value


app = typer.Typer(
    name="secondbrain",
    help="AI-powered related notes, summaries and chat for a markdown vault.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON (related, status)",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="SECONDBRAIN_STORE_PATH",
        help="Path to the store directory (default: ~/.secondbrain/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
    vault: Annotated[Optional[Path], typer.Option(
        "--vault",
        envvar="SECONDBRAIN_VAULT",
        help="Path to the notes directory (overrides the configured vault)",
        callback=_vault_callback,
        is_eager=True,
    )] = None,
):
    """AI-powered related notes, summaries and chat for a markdown vault."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

NoteArgument = Annotated[str, typer.Argument(help="Note id: path relative to the vault, e.g. ideas/foo.md")]


def _load_state() -> AppState:
    """Load the store, applying --vault. Exits with a message on failure."""
    try:
        state = AppState.load(_store_override)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _vault_override is not None:
        state.set_vault(_vault_override)
    return state


def _print_usage(record: UsageRecord) -> None:
    if record.cost_usd or record.input_tokens or record.output_tokens:
        typer.echo(
            f"cost: ${record.cost_usd:.6f} "
            f"({record.input_tokens} in / {record.output_tokens} out tokens)",
            err=True,
        )


def _run(body: Callable[[AppState], object]):
    """
    Run an async command body against a freshly loaded state.

    Secondbrain errors are shown as a one-line message and exit code 1.
    The gateway's network clients are closed afterwards.
    """
    state = _load_state()
    ops_handler = configure_ops_log(state.store_path)

    async def runner():
        try:
            return await body(state)
        finally:
            await state.aclose()

    try:
        return asyncio.run(runner())
    except SecondBrainError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        remove_ops_log(ops_handler)


def _indexer(state: AppState) -> Indexer:
    return Indexer(
        state.note_store(),
        state.gateway(),
        state.cache,
        flush=state.save_cache,
        batch_size=state.config.batch_size,
    )


def _assistant(state: AppState, **overrides) -> NoteAssistant:
    params = {
        "related_limit": state.config.related_limit,
        "min_similarity": state.config.related_min_similarity,
        "batch_size": state.config.batch_size,
        "on_usage": _print_usage,
    }
    params.update(overrides)
    return NoteAssistant(
        state.gateway(),
        state.note_store(),
        _indexer(state),
        state.cache,
        **params,
    )


# -----------------------------------------------------------------------------
# Indexing
# -----------------------------------------------------------------------------

@app.command()
def index():
    """Rebuild embeddings for every note in the vault."""

    def progress(done: int, total: int, note_id: str) -> None:
        typer.echo(f"[{done}/{total}] {note_id}", err=True)

    async def body(state: AppState):
        report = await _indexer(state).rebuild_all(progress=progress)
        for note_id, error in sorted(report.failed.items()):
            typer.echo(f"failed: {note_id}: {error}", err=True)
        typer.echo(
            f"\n{len(report.indexed)} indexed, {len(report.failed)} failed, "
            f"{len(report.skipped)} skipped, {len(report.pruned)} pruned "
            f"(cache size {state.cache.size()})",
            err=True,
        )
        return report

    report = _run(body)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def reindex(note: NoteArgument):
    """Re-embed one note now, whether or not it changed."""

    async def body(state: AppState):
        entry = await _indexer(state).reindex_one(note)
        typer.echo(f"Indexed {entry.note_id} ({entry.dimension} dims)")

    _run(body)


@app.command()
def watch(
    interval: Annotated[float, typer.Option(
        "--interval", "-i",
        help="Seconds between vault scans",
    )] = 2.0,
):
    """Keep embeddings fresh while notes change (Ctrl+C to stop)."""

    async def body(state: AppState):
        typer.echo(f"Watching {state.config.vault_path} for changes...", err=True)
        count = await _indexer(state).watch(interval=interval)
        typer.echo(f"{count} notes re-embedded", err=True)

    try:
        _run(body)
    except KeyboardInterrupt:
        typer.echo("\nStopped.", err=True)


@app.command()
def status():
    """Show provider, cache and indexing status."""

    async def body(state: AppState):
        gateway = state.gateway()
        states = await _indexer(state).status()
        counts = {s.value: 0 for s in NoteState}
        for s in states.values():
            counts[s.value] += 1
        info = {
            "store": str(state.store_path),
            "vault": str(state.config.vault_path),
            "provider": state.config.provider.name,
            "model": gateway.provider.model,
            "embedding_model": gateway.embedding_model,
            "cache_size": state.cache.size(),
            "dimension": state.cache.dimension,
            "notes": len(states),
            **counts,
        }
        if _json_output:
            typer.echo(json.dumps(info, indent=2))
        else:
            for key, value in info.items():
                typer.echo(f"{key}: {value}")

    _run(body)


# -----------------------------------------------------------------------------
# Note actions
# -----------------------------------------------------------------------------

@app.command()
def related(
    note: NoteArgument,
    limit: Annotated[Optional[int], typer.Option(
        "--limit", "-n",
        help="Maximum related notes (default from config)",
    )] = None,
    min_similarity: Annotated[Optional[float], typer.Option(
        "--min-similarity",
        help="Only notes scoring above this similarity (default from config)",
    )] = None,
    explain: Annotated[bool, typer.Option(
        "--explain/--no-explain",
        help="Ask the model why each note is related",
    )] = True,
):
    """Find notes related to NOTE."""

    async def body(state: AppState):
        overrides = {}
        if limit is not None:
            overrides["related_limit"] = limit
        if min_similarity is not None:
            overrides["min_similarity"] = min_similarity
        results = await _assistant(state, **overrides).find_related(note, explain=explain)
        if _json_output:
            typer.echo(json.dumps([
                {"note": r.note_id, "similarity": r.similarity, "explanation": r.explanation}
                for r in results
            ], indent=2))
        else:
            typer.echo(render_related(results))

    _run(body)


@app.command()
def summarize(
    note: NoteArgument,
    append: Annotated[bool, typer.Option(
        "--append", "-a",
        help="Append the summary to the note instead of printing only",
    )] = False,
):
    """Summarize NOTE in a few bullet points."""

    async def body(state: AppState):
        assistant = _assistant(state)
        if append:
            summary = await assistant.append_summary(note)
            typer.echo(summary)
            typer.echo(f"Summary added to {note}", err=True)
        else:
            typer.echo(await assistant.summarize(note))

    _run(body)


@app.command()
def analyze(note: NoteArgument):
    """Themes, key points, expansion ideas and questions for NOTE."""

    async def body(state: AppState):
        typer.echo(await _assistant(state).analyze(note))

    _run(body)


@app.command("summarize-text")
def summarize_text(
    mode: Annotated[str, typer.Option(
        "--mode", "-m",
        help="replace: print only the summary; append: text followed by a summary callout",
    )] = "replace",
):
    """Summarize text from stdin in one or two sentences."""
    if mode not in ("replace", "append"):
        typer.echo("Error: --mode must be 'replace' or 'append'", err=True)
        raise typer.Exit(1)
    selection = sys.stdin.read()
    if not selection.strip():
        typer.echo("Error: no text on stdin", err=True)
        raise typer.Exit(1)

    async def body(state: AppState):
        assistant = NoteAssistant(state.gateway(), on_usage=_print_usage)
        summary = await assistant.summarize_selection(selection)
        if mode == "append":
            typer.echo(append_summary_callout(selection.rstrip("\n"), summary), nl=False)
        else:
            typer.echo(summary)

    _run(body)


# -----------------------------------------------------------------------------
# Chat
# -----------------------------------------------------------------------------

CHAT_HELP = "Commands: /clear (reset history), /cost (usage so far), /exit"


@app.command()
def chat(
    note: Annotated[Optional[str], typer.Option(
        "--note", "-n",
        help="Note to discuss (re-read before every turn)",
    )] = None,
):
    """Interactive chat about a note."""

    async def body(state: AppState):
        notes = state.note_store()
        session = ChatSession(
            state.gateway(),
            reset_usage_on_clear=state.config.reset_usage_on_clear,
        )
        session.subscribe(lambda record, totals: _print_usage(record))
        typer.echo(CHAT_HELP, err=True)

        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            text = line.strip()
            if not text:
                continue
            if text in ("/exit", "/quit"):
                break
            if text == "/clear":
                session.clear_history()
                typer.echo("Chat history has been cleared")
                continue
            if text == "/cost":
                usage = session.usage
                typer.echo(
                    f"${usage.cost_usd:.6f} over {usage.calls} calls "
                    f"({usage.input_tokens} in / {usage.output_tokens} out tokens)"
                )
                continue
            if not note:
                typer.echo("Please open a note first! (use --note)")
                continue

            try:
                content = await notes.read_content(note)
                reply = await session.send(text, content)
            except SecondBrainError as e:
                logger.warning("Chat turn failed: %s", e)
                typer.echo(f"Sorry, there was an error processing your request. ({e})", err=True)
                continue
            typer.echo(reply)

    _run(body)


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------

@app.command()
def provider(
    name: Annotated[str, typer.Argument(help="Provider: openai or ollama")],
    model: Annotated[Optional[str], typer.Option("--model", help="Completion model")] = None,
    embedding_model: Annotated[Optional[str], typer.Option(
        "--embedding-model", help="Embedding model",
    )] = None,
    base_url: Annotated[Optional[str], typer.Option(
        "--base-url", help="Endpoint URL (Ollama server, or OpenAI-compatible API)",
    )] = None,
):
    """Switch AI provider. Run 'secondbrain index' afterwards to rebuild embeddings."""
    from .providers import get_registry

    available = get_registry().list_providers()
    if name not in available:
        typer.echo(f"Error: unknown provider '{name}' (available: {', '.join(available)})", err=True)
        raise typer.Exit(1)

    state = _load_state()
    params = {}
    if model:
        params["model"] = model
    if embedding_model:
        params["embedding_model"] = embedding_model
    if base_url:
        params["base_url"] = base_url
    state.set_provider(name, params)
    state.save()
    typer.echo(f"Provider set to {name}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="secondbrain CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
