"""MCP server exposing the notes card tree to tools."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from notenest.config import DATABASE_FILENAME, resolve_data_directory
from notenest.core.codec import encode_card
from notenest.core.storage import SqliteStorage
from notenest.core.store import NotesStore
from notenest.core.tree.markdown import render_subtree_as_markdown
from notenest.models.card import Card, Outcome


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat()


def _breadcrumbs_str(store: NotesStore, card_id: str) -> str:
    titles: list[str] = []
    for ancestor_id in store.index.ancestors(card_id):
        ancestor = store.index.get(ancestor_id)
        if ancestor is not None:
            titles.append(ancestor.title[:40])
    return " > ".join(reversed(titles))


def _card_entry(store: NotesStore, card: Card, *, include_breadcrumbs: bool = True) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "card_id": card.id,
        "title": card.title,
        "child_count": sum(1 for c in card.children if not c.is_deleted),
        "block_count": len(card.blocks),
        "updated": _iso(card.updated_at),
    }
    if card.is_deleted:
        entry["deleted"] = True
    if include_breadcrumbs:
        entry["breadcrumbs"] = _breadcrumbs_str(store, card.id)
    return entry


def _outcome_result(outcome: Outcome, card_id: str) -> dict[str, Any]:
    if outcome is Outcome.APPLIED:
        return {"success": True, "card_id": card_id}
    if outcome is Outcome.NOT_FOUND:
        return {"success": False, "error": f"Card '{card_id}' not found."}
    return {"success": False, "error": f"Operation on '{card_id}' is not allowed."}


# --- Core functions (testable without MCP context) ---


def notes_search(
    store: NotesStore,
    *,
    query: str = "",
    scope: str | None = None,
    include_breadcrumbs: bool = True,
    limit: int = 20,
    offset: int = 0,
) -> dict[str, Any]:
    """Search card titles, text blocks and bullet items.

    Args:
        query: Substring to search for (case-insensitive).
        scope: Restrict to the subtree of this card ID.
        include_breadcrumbs: Include ancestor chain in results.
        limit: Max results (1-50, default 20).
        offset: Pagination offset.
    """
    if not query.strip():
        return {"error": "No search query provided.", "results": [], "count": 0, "total": 0}
    if scope is not None and store.get_card(scope) is None:
        return {"error": f"Card '{scope}' not found.", "results": [], "count": 0, "total": 0}

    limit = max(1, min(limit, 50))
    matches = store.search_cards(query, scope)
    page = matches[offset : offset + limit]
    output: dict[str, Any] = {
        "results": [_card_entry(store, c, include_breadcrumbs=include_breadcrumbs) for c in page],
        "count": len(page),
        "total": len(matches),
        "has_more": offset + len(page) < len(matches),
    }
    if output["has_more"]:
        output["next_offset"] = offset + limit
    return output


def notes_read_card(
    store: NotesStore,
    *,
    card_id: str,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Read a card and its subtree as markdown or structured JSON."""
    card = store.get_card(card_id)
    if card is None:
        return {"error": f"Card '{card_id}' not found."}
    result: dict[str, Any] = {
        "card_id": card.id,
        "title": card.title,
        "breadcrumbs": _breadcrumbs_str(store, card.id),
    }
    if output_format == "json":
        result["card"] = encode_card(card)
    else:
        result["content"] = render_subtree_as_markdown(card, max_depth=max_depth)
    return result


def notes_list_children(store: NotesStore, *, card_id: str | None = None) -> dict[str, Any]:
    """List active children of a card, or the top-level cards."""
    if card_id is not None and store.get_card(card_id) is None:
        return {"error": f"Card '{card_id}' not found."}
    children = store.get_children(card_id)
    return {
        "cards": [_card_entry(store, c, include_breadcrumbs=False) for c in children],
        "count": len(children),
    }


def notes_list_trash(store: NotesStore, *, query: str | None = None) -> dict[str, Any]:
    deleted = store.get_deleted_cards(query)
    return {
        "cards": [_card_entry(store, c) for c in deleted],
        "count": len(deleted),
    }


def notes_add_card(store: NotesStore, *, title: str, parent_id: str | None = None) -> dict[str, Any]:
    card_id = store.add_card(title, parent_id)
    card = store.get_card(card_id)
    return {"success": True, "card_id": card_id, "parent_id": card.parent_id if card else None}


def notes_update_card(store: NotesStore, *, card_id: str, title: str | None = None) -> dict[str, Any]:
    if title is None:
        return {"success": False, "error": "No fields to update."}
    return _outcome_result(store.update_card(card_id, title=title), card_id)


def notes_move_card(
    store: NotesStore, *, card_id: str, new_parent_id: str | None = None
) -> dict[str, Any]:
    return _outcome_result(store.move_card(card_id, new_parent_id), card_id)


def notes_delete_card(store: NotesStore, *, card_id: str) -> dict[str, Any]:
    return _outcome_result(store.delete_card(card_id), card_id)


def notes_restore_card(
    store: NotesStore, *, card_id: str, target_parent_id: str | None = None
) -> dict[str, Any]:
    return _outcome_result(store.restore_card(card_id, target_parent_id), card_id)


# --- Server wiring ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    store: NotesStore
    db_path: Path


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Load the store on startup, flush pending writes on shutdown."""
    db_path = resolve_data_directory() / DATABASE_FILENAME
    store = await NotesStore.load(SqliteStorage(db_path))
    logger.info("Serving notes from {}", db_path)
    try:
        yield ServerContext(store=store, db_path=db_path)
    finally:
        await store.flush()


mcp_server = FastMCP(
    "notenest",
    instructions="""\
notenest stores notes as cards in a tree. A card has a title, content blocks
(text, bullets, images, checkboxes, links) and child cards.

1. Search with notes_search_tool, or browse with notes_list_children_tool.
2. Read a card's subtree with notes_read_card_tool (use max_depth for big trees).
3. Deleting moves a card and its subtree to the recycle bin; restore brings it back.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def notes_search_tool(
    ctx: Context,
    query: str = "",
    scope: str | None = None,
    include_breadcrumbs: bool = True,
    limit: int = 20,
    offset: int = 0,
) -> dict[str, Any]:
    """Search card titles, text blocks and bullet items (case-insensitive).

    Search results contain only the matched card. Call notes_read_card_tool
    on a result's card_id to see its blocks and children.

    Args:
        query: Substring to search for.
        scope: Restrict to the subtree of this card ID.
        include_breadcrumbs: Include ancestor chain in results.
        limit: Max results (1-50, default 20).
        offset: Pagination offset.
    """
    return notes_search(
        _ctx(ctx).store,
        query=query,
        scope=scope,
        include_breadcrumbs=include_breadcrumbs,
        limit=limit,
        offset=offset,
    )


@mcp_server.tool()
async def notes_read_card_tool(
    ctx: Context,
    card_id: str,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Read a card and its subtree.

    Args:
        card_id: Card ID to read.
        max_depth: Max depth levels (None = unlimited).
        output_format: "markdown" (human-readable) or "json" (structured).
    """
    return notes_read_card(
        _ctx(ctx).store, card_id=card_id, max_depth=max_depth, output_format=output_format
    )


@mcp_server.tool()
async def notes_list_children_tool(ctx: Context, card_id: str | None = None) -> dict[str, Any]:
    """List active children of a card (top-level cards when card_id is omitted)."""
    return notes_list_children(_ctx(ctx).store, card_id=card_id)


@mcp_server.tool()
async def notes_list_trash_tool(ctx: Context, query: str | None = None) -> dict[str, Any]:
    """List cards in the recycle bin, optionally filtered by title."""
    return notes_list_trash(_ctx(ctx).store, query=query)


@mcp_server.tool()
async def notes_add_card_tool(
    ctx: Context, title: str, parent_id: str | None = None
) -> dict[str, Any]:
    """Create a card under parent_id (top level when omitted)."""
    store = _ctx(ctx).store
    result = notes_add_card(store, title=title, parent_id=parent_id)
    await store.flush()
    return result


@mcp_server.tool()
async def notes_update_card_tool(
    ctx: Context, card_id: str, title: str | None = None
) -> dict[str, Any]:
    """Rename a card."""
    store = _ctx(ctx).store
    result = notes_update_card(store, card_id=card_id, title=title)
    await store.flush()
    return result


@mcp_server.tool()
async def notes_move_card_tool(
    ctx: Context, card_id: str, new_parent_id: str | None = None
) -> dict[str, Any]:
    """Move a card with its subtree. A card cannot move below itself."""
    store = _ctx(ctx).store
    result = notes_move_card(store, card_id=card_id, new_parent_id=new_parent_id)
    await store.flush()
    return result


@mcp_server.tool()
async def notes_delete_card_tool(ctx: Context, card_id: str) -> dict[str, Any]:
    """Move a card and its subtree to the recycle bin."""
    store = _ctx(ctx).store
    result = notes_delete_card(store, card_id=card_id)
    await store.flush()
    return result


@mcp_server.tool()
async def notes_restore_card_tool(
    ctx: Context, card_id: str, target_parent_id: str | None = None
) -> dict[str, Any]:
    """Restore a card from the recycle bin under target_parent_id."""
    store = _ctx(ctx).store
    result = notes_restore_card(store, card_id=card_id, target_parent_id=target_parent_id)
    await store.flush()
    return result


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from notenest.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
