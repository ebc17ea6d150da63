"""Tests for migrating the legacy categories schema."""

from notenest.core.codec import decode_card, decode_state
from notenest.core.importer.legacy import flatten_categories, migrate_legacy_data
from notenest.core.tree.ops import all_card_ids, find_card
from notenest.models.card import BulletBlock, BulletItem, TextBlock
from tests.unit.fakes import SequentialIds

NOW = 5_000


def _category(cat_id: str, name: str, parent_id: str | None = None, **extra: object) -> dict:
    return {"id": cat_id, "name": name, "parentId": parent_id, "children": [], **extra}


def test_flatten_categories_is_pre_order() -> None:
    nested = _category("a", "A")
    nested["children"] = [_category("b", "B", "a"), _category("c", "C", "a")]
    assert [c["id"] for c in flatten_categories([nested, _category("d", "D")])] == [
        "a",
        "b",
        "c",
        "d",
    ]


def test_categories_become_nested_cards() -> None:
    cards = migrate_legacy_data(
        [_category("a", "Projects", sortOrder=2), _category("b", "Side", "a")],
        [],
        now=NOW,
    )
    assert [c.id for c in cards] == ["a"]
    side = find_card(cards, "b")
    assert side is not None
    assert side.parent_id == "a"
    assert side.title == "Side"
    assert side.blocks == ()


def test_legacy_cards_go_under_their_category() -> None:
    cards = migrate_legacy_data(
        [_category("a", "Recipes")],
        [{"id": "k1", "title": "Soup", "categoryId": "a", "bullets": [{"id": "x", "content": "salt"}]}],
        id_factory=SequentialIds("blk"),
        now=NOW,
    )
    soup = find_card(cards, "k1")
    assert soup is not None
    assert soup.parent_id == "a"
    assert soup.blocks[0].id == "blk1"


def test_orphans_go_to_top_level() -> None:
    """A category or card pointing at an unknown parent lands at the top level."""
    cards = migrate_legacy_data(
        [_category("a", "Lost", "missing")],
        [{"id": "k1", "title": "", "categoryId": "gone"}, {"id": "k2", "title": "Loose"}],
        now=NOW,
    )
    assert sorted(c.id for c in cards) == ["a", "k1", "k2"]
    untitled = find_card(cards, "k1")
    assert untitled is not None
    assert untitled.title == "Untitled"


def test_category_cycle_is_grafted_at_top_level() -> None:
    cards = migrate_legacy_data(
        [_category("a", "A", "b"), _category("b", "B", "a")],
        [],
        now=NOW,
    )
    assert all_card_ids(cards) == ["a", "b"]
    assert cards[0].parent_id is None
    b = find_card(cards, "b")
    assert b is not None
    assert b.parent_id == "a"
    assert b.children == ()


def test_siblings_sorted_by_descending_sort_order() -> None:
    cards = migrate_legacy_data(
        [
            _category("low", "Low", sortOrder=1),
            _category("high", "High", sortOrder=9),
            _category("mid", "Mid", sortOrder=5),
        ],
        [],
        now=NOW,
    )
    assert [c.id for c in cards] == ["high", "mid", "low"]


def test_decode_state_detects_legacy_schema() -> None:
    state = decode_state(
        {"categories": [_category("a", "Inbox")], "cards": [{"id": "k", "categoryId": "a"}]},
        now=NOW,
    )
    assert [c.id for c in state.cards] == ["a"]
    assert [c.id for c in state.cards[0].children] == ["k"]


def test_legacy_content_fills_an_empty_block_list() -> None:
    card = decode_card(
        {"id": "x", "title": "T", "blocks": [], "content": "important text"},
        parent_id=None,
        id_factory=SequentialIds("blk"),
        now=NOW,
    )
    assert card.blocks == (TextBlock(id="blk1", content="important text"),)


def test_legacy_content_ignored_when_blocks_exist_but_bullets_appended() -> None:
    card = decode_card(
        {
            "id": "x",
            "blocks": [{"id": "t1", "type": "text", "content": "current"}],
            "content": "stale",
            "bullets": [{"id": "i1", "content": "still here"}],
        },
        parent_id=None,
        id_factory=SequentialIds("blk"),
        now=NOW,
    )
    assert card.blocks == (
        TextBlock(id="t1", content="current"),
        BulletBlock(id="blk1", items=(BulletItem(id="i1", content="still here"),)),
    )
