"""CLI for notenest: manage the card tree from a terminal."""

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from loguru import logger

from notenest.config import DATABASE_FILENAME, resolve_data_directory
from notenest.core.codec import encode_card, export_filename
from notenest.core.storage import SqliteStorage
from notenest.core.store import NotesStore
from notenest.core.tree.markdown import render_subtree_as_markdown
from notenest.core.tree.ops import new_id
from notenest.logging_config import configure_logging
from notenest.models.card import Card, Direction, ImportMode, Outcome, TextBlock

app = typer.Typer(help="notenest: nested note cards with a recycle bin.")

T = TypeVar("T")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Directory holding the notes database"),
]
JsonOption = Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _db_path(data_dir: Path | None) -> Path:
    return (data_dir or resolve_data_directory()) / DATABASE_FILENAME


def _with_store(data_dir: Path | None, fn: Callable[[NotesStore], T]) -> T:
    """Load the store, run fn against it, and wait for the write to land."""

    async def run() -> T:
        store = await NotesStore.load(SqliteStorage(_db_path(data_dir)))
        result = fn(store)
        await store.flush()
        return result

    return asyncio.run(run())


def _check(outcome: Outcome, what: str) -> None:
    if outcome is Outcome.NOT_FOUND:
        logger.error("{}: card not found", what)
        raise typer.Exit(1)
    if outcome is Outcome.REJECTED:
        logger.error("{}: not allowed", what)
        raise typer.Exit(1)


def _card_line(card: Card) -> str:
    title = card.title or "Untitled"
    active_children = sum(1 for c in card.children if not c.is_deleted)
    extra = f" ({active_children} inside)" if active_children else ""
    return f"  {title}{extra}  [id={card.id}]"


def _summary(card: Card) -> dict[str, Any]:
    return {
        "id": card.id,
        "title": card.title,
        "parent_id": card.parent_id,
        "children": sum(1 for c in card.children if not c.is_deleted),
        "is_deleted": card.is_deleted,
    }


def _print_cards(cards: list[Card], *, output_json: bool, empty: str) -> None:
    if output_json:
        typer.echo(json.dumps({"cards": [_summary(c) for c in cards], "count": len(cards)}, indent=2))
        return
    if not cards:
        typer.echo(empty)
        return
    for card in cards:
        typer.echo(_card_line(card))


@app.command()
def add(
    title: str = typer.Argument(..., help="Title of the new card"),
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent card ID")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Create a card at the top level or under a parent."""
    card_id = _with_store(data_dir, lambda store: store.add_card(title, parent))
    typer.echo(card_id)


@app.command(name="ls")
def list_cmd(
    card_id: str | None = typer.Argument(None, help="Card whose children to list"),
    data_dir: DataDirOption = None,
    output_json: JsonOption = False,
) -> None:
    """List the active children of a card (top-level cards by default)."""

    def run(store: NotesStore) -> list[Card] | None:
        if card_id is not None and store.get_card(card_id) is None:
            return None
        return store.get_children(card_id)

    children = _with_store(data_dir, run)
    if children is None:
        typer.echo(f"Card '{card_id}' not found.")
        raise typer.Exit(1)
    _print_cards(children, output_json=output_json, empty="No cards.")


@app.command()
def show(
    card_id: str = typer.Argument(..., help="Card ID to render"),
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
    deleted: bool = typer.Option(False, "--deleted", help="Include deleted cards"),
    data_dir: DataDirOption = None,
    output_json: JsonOption = False,
) -> None:
    """Render a card and its subtree."""
    card = _with_store(data_dir, lambda store: store.get_card(card_id))
    if card is None:
        typer.echo(f"Card '{card_id}' not found.")
        raise typer.Exit(1)
    if output_json:
        typer.echo(json.dumps(encode_card(card), indent=2))
        return
    typer.echo(render_subtree_as_markdown(card, max_depth=max_depth, include_deleted=deleted))


@app.command()
def rename(
    card_id: str = typer.Argument(..., help="Card ID"),
    title: str = typer.Argument(..., help="New title"),
    data_dir: DataDirOption = None,
) -> None:
    """Change a card's title."""
    _check(_with_store(data_dir, lambda store: store.update_card(card_id, title=title)), "rename")
    typer.echo(f"Renamed {card_id}")


@app.command()
def note(
    card_id: str = typer.Argument(..., help="Card ID"),
    text: str = typer.Argument(..., help="Text to append as a new block"),
    data_dir: DataDirOption = None,
) -> None:
    """Append a text block to a card."""

    def run(store: NotesStore) -> Outcome:
        card = store.get_card(card_id)
        if card is None:
            return Outcome.NOT_FOUND
        return store.update_card_blocks(card_id, [*card.blocks, TextBlock(id=new_id(), content=text)])

    _check(_with_store(data_dir, run), "note")
    typer.echo(f"Added note to {card_id}")


@app.command()
def move(
    card_id: str = typer.Argument(..., help="Card ID to move"),
    to: Annotated[str | None, typer.Option("--to", "-t", help="New parent ID (top level if omitted)")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Move a card (with its subtree) under another card."""
    _check(_with_store(data_dir, lambda store: store.move_card(card_id, to)), "move")
    typer.echo(f"Moved {card_id}")


@app.command()
def up(
    card_id: str = typer.Argument(..., help="Card ID"),
    data_dir: DataDirOption = None,
) -> None:
    """Move a card one place up among its siblings."""
    _check(_with_store(data_dir, lambda store: store.move_card_step(card_id, Direction.UP)), "up")


@app.command()
def down(
    card_id: str = typer.Argument(..., help="Card ID"),
    data_dir: DataDirOption = None,
) -> None:
    """Move a card one place down among its siblings."""
    _check(
        _with_store(data_dir, lambda store: store.move_card_step(card_id, Direction.DOWN)), "down"
    )


@app.command()
def reorder(
    card_ids: list[str] = typer.Argument(..., help="Sibling IDs in the wanted order"),
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent card ID")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Put sibling cards in the given order; unnamed siblings go last."""
    _check(_with_store(data_dir, lambda store: store.reorder_children(parent, card_ids)), "reorder")


@app.command(name="rm")
def remove(
    card_id: str = typer.Argument(..., help="Card ID"),
    data_dir: DataDirOption = None,
) -> None:
    """Move a card and its subtree to the recycle bin."""
    _check(_with_store(data_dir, lambda store: store.delete_card(card_id)), "rm")
    typer.echo(f"Moved {card_id} to the recycle bin")


@app.command()
def restore(
    card_id: str = typer.Argument(..., help="Card ID"),
    to: Annotated[str | None, typer.Option("--to", "-t", help="Parent ID to restore under")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Restore a card and its subtree from the recycle bin."""
    _check(_with_store(data_dir, lambda store: store.restore_card(card_id, to)), "restore")
    typer.echo(f"Restored {card_id}")


@app.command()
def purge(
    card_id: str = typer.Argument(..., help="Card ID"),
    data_dir: DataDirOption = None,
) -> None:
    """Permanently delete a card that is in the recycle bin."""
    _check(_with_store(data_dir, lambda store: store.permanently_delete_card(card_id)), "purge")
    typer.echo(f"Permanently deleted {card_id}")


@app.command()
def trash(
    query: Annotated[str | None, typer.Option("--query", "-q", help="Filter by title")] = None,
    data_dir: DataDirOption = None,
    output_json: JsonOption = False,
) -> None:
    """List cards in the recycle bin."""
    cards = _with_store(data_dir, lambda store: store.get_deleted_cards(query))
    _print_cards(cards, output_json=output_json, empty="Recycle bin is empty.")


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    scope: Annotated[
        str | None,
        typer.Option("--scope", "-s", help="Restrict to the subtree of this card"),
    ] = None,
    data_dir: DataDirOption = None,
    output_json: JsonOption = False,
) -> None:
    """Search titles, text blocks and bullet items."""
    results = _with_store(data_dir, lambda store: store.search_cards(query, scope))
    if not output_json:
        typer.echo(f"Found {len(results)} results:\n")
    _print_cards(results, output_json=output_json, empty="")


@app.command()
def export(
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output file (default: notes-backup-DATE.json)"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Write a backup file with every card."""
    payload = _with_store(data_dir, lambda store: store.export_data())
    target = output or Path(export_filename())
    target.write_bytes(payload)
    typer.echo(f"Exported to {target}")


@app.command(name="import")
def import_cmd(
    path: Path = typer.Argument(..., help="Backup file to import"),
    mode: Annotated[
        ImportMode,
        typer.Option("--mode", "-m", help="merge appends, override replaces everything"),
    ] = ImportMode.MERGE,
    data_dir: DataDirOption = None,
) -> None:
    """Import a backup (current or legacy format)."""
    if not path.exists():
        logger.error("Import file not found: {}", path)
        raise typer.Exit(1)
    raw = path.read_bytes()
    try:
        count = _with_store(data_dir, lambda store: store.import_data(raw, mode))
    except (ValueError, KeyError, TypeError) as e:
        logger.error("Cannot import {}: {}", path, e)
        raise typer.Exit(1) from e
    typer.echo(f"Imported {count} cards ({mode.value})")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from notenest.mcp.server import run_mcp_server

    run_mcp_server()
