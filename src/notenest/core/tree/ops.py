"""Structural operations over the nested card tree.

Every function takes a forest (the tuple of top-level cards) and returns a new
forest. Only the cards on the path from the root to the changed card are
rebuilt; untouched subtrees are shared with the input, and a call that
finds nothing to change returns the input forest itself.
"""

import time
import uuid
from collections.abc import Callable, Iterator, Mapping
from dataclasses import fields, replace
from typing import Any

from notenest.models.card import Card

Forest = tuple[Card, ...]

_CARD_FIELDS = frozenset(f.name for f in fields(Card))


def new_id() -> str:
    return uuid.uuid4().hex[:16]


def now_ms() -> int:
    return int(time.time() * 1000)


def iter_cards(cards: Forest) -> Iterator[Card]:
    """Yield every card in pre-order (a card before its children)."""
    for card in cards:
        yield card
        yield from iter_cards(card.children)


def all_card_ids(cards: Forest) -> list[str]:
    return [card.id for card in iter_cards(cards)]


def find_card(cards: Forest, card_id: str) -> Card | None:
    """Depth-first lookup. Returns None if no card has this id."""
    for card in cards:
        if card.id == card_id:
            return card
        found = find_card(card.children, card_id)
        if found is not None:
            return found
    return None


def collect_descendant_ids(cards: Forest, card_id: str) -> set[str]:
    """Return ids of every card below card_id, excluding card_id itself."""
    card = find_card(cards, card_id)
    if card is None:
        return set()
    return set(all_card_ids(card.children))


def _replace_in(
    cards: Forest,
    card_id: str,
    fn: Callable[[Card], Card | None],
    on_parent: Callable[[Card], Card] | None = None,
) -> tuple[Forest, bool]:
    """Apply fn to the card with card_id, rebuilding only its ancestors.

    fn returning None drops the card. on_parent, if given, is applied to the
    direct parent of the matched card (after its children were replaced).
    """
    for i, card in enumerate(cards):
        if card.id == card_id:
            new = fn(card)
            middle = (new,) if new is not None else ()
            return cards[:i] + middle + cards[i + 1 :], True
        children, found = _replace_in(card.children, card_id, fn, on_parent)
        if found:
            parent = replace(card, children=children)
            if on_parent is not None and any(c.id == card_id for c in card.children):
                parent = on_parent(parent)
            return cards[:i] + (parent,) + cards[i + 1 :], True
    return cards, False


def insert_card(
    cards: Forest,
    parent_id: str | None,
    new_card: Card,
    *,
    now: int | None = None,
) -> Forest:
    """Prepend new_card to the root (parent_id None) or to a parent's children.

    If parent_id does not exist the forest is returned unchanged; callers that
    need a guarantee must check with find_card first. When now is given the
    parent's updated_at is set to it.
    """
    if parent_id is None:
        return (new_card, *cards)

    def prepend(parent: Card) -> Card:
        updated_at = parent.updated_at if now is None else now
        return replace(parent, children=(new_card, *parent.children), updated_at=updated_at)

    result, _found = _replace_in(cards, parent_id, prepend)
    return result


def remove_card(cards: Forest, card_id: str, *, now: int | None = None) -> Forest:
    """Remove a card and its whole subtree. No-op if not found."""
    bump = None if now is None else (lambda parent: replace(parent, updated_at=now))
    result, _found = _replace_in(cards, card_id, lambda _card: None, bump)
    return result


def update_card(
    cards: Forest,
    card_id: str,
    changes: Mapping[str, Any],
    *,
    now: int | None = None,
) -> Forest:
    """Apply a partial field update and refresh updated_at.

    Fields not named in changes keep their values. Unknown field names raise
    ValueError.
    """
    unknown = set(changes) - _CARD_FIELDS
    if unknown:
        msg = f"Unknown card fields: {sorted(unknown)!r}"
        raise ValueError(msg)
    stamp = now_ms() if now is None else now
    result, _found = _replace_in(
        cards, card_id, lambda card: replace(card, **{**changes, "updated_at": stamp})
    )
    return result


def can_move(cards: Forest, card_id: str, target_parent_id: str | None) -> bool:
    """Check that moving card_id under target_parent_id keeps the tree acyclic."""
    if card_id == target_parent_id:
        return False
    if target_parent_id is None:
        return True
    return target_parent_id not in collect_descendant_ids(cards, card_id)


def move_card(
    cards: Forest,
    card_id: str,
    new_parent_id: str | None,
    *,
    now: int | None = None,
) -> Forest:
    """Relocate a card (with its subtree) to the front of a new parent.

    Does not validate: call can_move first, moving a card below itself
    drops it from the tree.
    """
    card = find_card(cards, card_id)
    if card is None:
        return cards
    stamp = now_ms() if now is None else now
    moved = replace(card, parent_id=new_parent_id, updated_at=stamp)
    without = remove_card(cards, card_id, now=now)
    return insert_card(without, new_parent_id, moved, now=now)


def set_deleted(card: Card, deleted: bool, *, now: int | None = None) -> Card:
    """Set is_deleted on a card and all of its descendants."""
    updated_at = card.updated_at if now is None else now
    return replace(
        card,
        is_deleted=deleted,
        updated_at=updated_at,
        children=tuple(set_deleted(child, deleted, now=now) for child in card.children),
    )


def replace_card(cards: Forest, card_id: str, fn: Callable[[Card], Card]) -> Forest:
    """Replace the card with card_id by fn(card). No-op if not found."""
    result, _found = _replace_in(cards, card_id, fn)
    return result
