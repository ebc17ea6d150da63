"""Tests for MCP tool core functions."""

from notenest.core.store import NotesStore
from notenest.mcp.server import (
    notes_add_card,
    notes_delete_card,
    notes_list_children,
    notes_list_trash,
    notes_move_card,
    notes_read_card,
    notes_restore_card,
    notes_search,
    notes_update_card,
)
from notenest.models.card import TextBlock
from tests.unit.fakes import Tree


def test_notes_search_returns_results_with_breadcrumbs(store: NotesStore, populated: Tree) -> None:
    result = notes_search(store, query="task")
    assert result["count"] == 1
    assert result["total"] == 1
    first = result["results"][0]
    assert first["card_id"] == populated.task
    assert first["breadcrumbs"] == "Work > Project"
    assert result["has_more"] is False


def test_notes_search_matches_block_content(store: NotesStore, populated: Tree) -> None:
    store.update_card_blocks(populated.home, [TextBlock(id="t1", content="Fix the fence")])
    result = notes_search(store, query="fence", include_breadcrumbs=False)
    assert [r["card_id"] for r in result["results"]] == [populated.home]
    assert "breadcrumbs" not in result["results"][0]


def test_notes_search_paginates(store: NotesStore, populated: Tree) -> None:
    result = notes_search(store, query="o", limit=1)
    assert result["count"] == 1
    assert result["total"] == 3
    assert result["has_more"] is True
    assert result["next_offset"] == 1

    last = notes_search(store, query="o", limit=1, offset=2)
    assert last["has_more"] is False
    assert "next_offset" not in last


def test_notes_search_rejects_empty_query_and_unknown_scope(store: NotesStore, populated: Tree) -> None:
    assert "error" in notes_search(store, query="   ")
    assert "error" in notes_search(store, query="task", scope="missing")


def test_notes_search_with_scope(store: NotesStore, populated: Tree) -> None:
    result = notes_search(store, query="o", scope=populated.project)
    assert [r["card_id"] for r in result["results"]] == [populated.project]


def test_notes_read_card_returns_markdown(store: NotesStore, populated: Tree) -> None:
    result = notes_read_card(store, card_id=populated.work)
    assert result["title"] == "Work"
    assert result["breadcrumbs"] == ""
    assert result["content"] == "- Work\n    - Project\n        - Task\n"


def test_notes_read_card_with_depth_limit(store: NotesStore, populated: Tree) -> None:
    result = notes_read_card(store, card_id=populated.work, max_depth=1)
    assert "- Task" not in result["content"]
    assert f"1 more child, id={populated.project}" in result["content"]


def test_notes_read_card_json(store: NotesStore, populated: Tree) -> None:
    result = notes_read_card(store, card_id=populated.project, output_format="json")
    assert result["card"]["parentId"] == populated.work
    assert result["card"]["children"][0]["title"] == "Task"
    assert result["breadcrumbs"] == "Work"


def test_notes_read_card_not_found(store: NotesStore) -> None:
    assert notes_read_card(store, card_id="missing") == {"error": "Card 'missing' not found."}


def test_notes_list_children(store: NotesStore, populated: Tree) -> None:
    top = notes_list_children(store)
    assert [c["title"] for c in top["cards"]] == ["Home", "Work"]
    assert top["cards"][1]["child_count"] == 1

    assert "error" in notes_list_children(store, card_id="missing")


def test_notes_add_card_falls_back_to_top_level(store: NotesStore, populated: Tree) -> None:
    result = notes_add_card(store, title="Loose", parent_id="missing")
    assert result["success"] is True
    assert result["parent_id"] is None

    nested = notes_add_card(store, title="Sub", parent_id=populated.home)
    assert nested["parent_id"] == populated.home


def test_notes_update_card(store: NotesStore, populated: Tree) -> None:
    assert notes_update_card(store, card_id=populated.home, title="House")["success"] is True
    card = store.get_card(populated.home)
    assert card is not None
    assert card.title == "House"

    assert notes_update_card(store, card_id=populated.home)["success"] is False
    assert notes_update_card(store, card_id="missing", title="x")["error"] == "Card 'missing' not found."


def test_notes_move_card_rejects_cycles(store: NotesStore, populated: Tree) -> None:
    result = notes_move_card(store, card_id=populated.work, new_parent_id=populated.task)
    assert result["success"] is False
    assert "not allowed" in result["error"]

    assert notes_move_card(store, card_id=populated.home, new_parent_id=populated.task)["success"]
    assert store.index.parent_of(populated.home) == populated.task


def test_delete_list_trash_and_restore(store: NotesStore, populated: Tree) -> None:
    assert notes_delete_card(store, card_id=populated.project)["success"] is True

    trash = notes_list_trash(store)
    assert trash["count"] == 1
    entry = trash["cards"][0]
    assert entry["card_id"] == populated.project
    assert entry["deleted"] is True
    assert entry["breadcrumbs"] == "Work"

    assert notes_restore_card(store, card_id=populated.project)["success"] is True
    assert notes_list_trash(store)["count"] == 0
    assert store.index.parent_of(populated.project) is None
