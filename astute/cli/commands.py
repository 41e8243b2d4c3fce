"""CLI commands for managing stored conversations."""

from __future__ import annotations

import asyncio

import typer

from astute import __version__
from astute.config.loader import load_config
from astute.conversation.models import Conversation
from astute.conversation.store import ConversationStore
from astute.errors import PersistenceError
from astute.logging import setup_logging
from astute.memory.context import format_transcript_lines
from astute.runtime import make_injector, make_memory_generator

app = typer.Typer(
    name="astute",
    help="astute - conversation memory for a voice assistant",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"astute v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=_version_callback, is_eager=True),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
) -> None:
    """astute - conversation memory for a voice assistant."""
    setup_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING")


def _open_store() -> ConversationStore:
    config = load_config()
    return ConversationStore(config.workspace_path)


def _find(store: ConversationStore, conversation_id: str) -> Conversation:
    """Resolve a full id or unique id prefix, exiting with an error otherwise."""
    exact = store.get(conversation_id)
    if exact is not None:
        return exact
    matches = [c for c in store.fetch_all_sorted_by_recency() if c.id.startswith(conversation_id)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        typer.echo(f"Ambiguous conversation id: {conversation_id}", err=True)
    else:
        typer.echo(f"Conversation not found: {conversation_id}", err=True)
    raise typer.Exit(1)


def _save(store: ConversationStore) -> None:
    try:
        store.save()
    except PersistenceError as e:
        typer.echo(f"Failed to save: {e}", err=True)
        raise typer.Exit(1)


@app.command("list")
def list_conversations() -> None:
    """List conversations, newest first."""
    store = _open_store()
    conversations = store.fetch_all_sorted_by_recency()
    if not conversations:
        typer.echo("No conversations yet.")
        return
    for c in conversations:
        count = f"  ({len(c.messages)} messages)" if c.messages else ""
        typer.echo(f"{c.id[:8]}  {c.timestamp:%b %d %H:%M}  {c.title}{count}")


@app.command()
def new() -> None:
    """Create an empty conversation and print its id."""
    store = _open_store()
    conversation = Conversation()
    store.insert(conversation)
    _save(store)
    typer.echo(conversation.id)


@app.command()
def show(conversation_id: str = typer.Argument(..., help="Conversation id or prefix")) -> None:
    """Print a conversation's title, summary and transcript."""
    store = _open_store()
    c = _find(store, conversation_id)
    typer.echo(f"# {c.title}")
    if c.summary:
        typer.echo(f"\n{c.summary}")
    lines = format_transcript_lines(c.sorted_messages(), with_timestamps=True)
    if lines:
        typer.echo("")
        for line in lines:
            typer.echo(line)


@app.command()
def delete(conversation_id: str = typer.Argument(..., help="Conversation id or prefix")) -> None:
    """Delete one conversation and its messages."""
    store = _open_store()
    c = _find(store, conversation_id)
    try:
        store.delete(c.id)
    except PersistenceError as e:
        typer.echo(f"Failed to delete: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {c.title}")


@app.command("delete-all")
def delete_all(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")) -> None:
    """Permanently delete every conversation."""
    store = _open_store()
    count = len(store.fetch_all_sorted_by_recency())
    if count == 0:
        typer.echo("No conversations to delete.")
        return
    if not yes:
        typer.confirm(
            f"This will permanently delete all {count} conversations. This cannot be undone. Continue?",
            abort=True,
        )
    try:
        removed = store.delete_all()
    except PersistenceError as e:
        typer.echo(f"Failed to delete: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {removed} conversations")


@app.command()
def instructions(conversation_id: str = typer.Argument(..., help="Conversation id or prefix")) -> None:
    """Print the instructions a new session on this conversation would start with."""
    config = load_config()
    store = ConversationStore(config.workspace_path)
    c = _find(store, conversation_id)
    others = [o for o in store.fetch_all_sorted_by_recency() if o.id != c.id]
    text = make_injector(config).build_instructions(
        config.context.baseline_instructions,
        c.sorted_messages(),
        others,
    )
    typer.echo(text)


@app.command()
def remember(conversation_id: str = typer.Argument(..., help="Conversation id or prefix")) -> None:
    """Generate any missing summary and title for a conversation."""
    config = load_config()
    if not config.provider.resolved_api_key:
        typer.echo("API key not configured. Set provider.apiKey in ~/.astute/config.json", err=True)
        raise typer.Exit(1)
    store = ConversationStore(config.workspace_path)
    c = _find(store, conversation_id)
    generator = make_memory_generator(config, store)
    result = asyncio.run(generator.generate(c))
    typer.echo(f"Title: {c.title}")
    if c.summary:
        typer.echo(f"Summary: {c.summary}")
    if not (result.summary_generated or result.title_generated):
        typer.echo("Nothing new generated.")


if __name__ == "__main__":
    app()
