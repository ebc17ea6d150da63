"""Fold the legacy categories + flat cards schema into the card tree.

Older saves kept a separate ``categories`` tree (``{id, name, parentId,
children}``) and a flat ``cards`` list pointing at categories through
``categoryId``. Each category becomes a card with no blocks; each legacy card
becomes a child of its category's card, or a top-level card when it has no
(known) category.
"""

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from loguru import logger

from notenest.core.codec import IdFactory, decode_card
from notenest.core.tree.ops import new_id, now_ms
from notenest.models.card import Card


def flatten_categories(categories: list[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Return categories in pre-order, nested children included."""
    result: list[Mapping[str, Any]] = []
    todo = list(reversed(categories))
    while todo:
        category = todo.pop()
        result.append(category)
        todo.extend(reversed(category.get("children") or []))
    return result


def _category_card(raw: Mapping[str, Any], now: int) -> Card:
    return Card(
        id=raw["id"],
        title=raw.get("name") or "",
        parent_id=None,
        created_at=now,
        updated_at=now,
        sort_order=int(raw.get("sortOrder") or now),
    )


def _legacy_card(raw: Mapping[str, Any], id_factory: IdFactory, now: int) -> Card:
    card = decode_card({**raw, "children": []}, parent_id=None, id_factory=id_factory, now=now)
    return replace(card, title=raw.get("title") or "Untitled", sort_order=now)


def migrate_legacy_data(
    categories: list[Mapping[str, Any]],
    legacy_cards: list[Mapping[str, Any]],
    *,
    id_factory: IdFactory = new_id,
    now: int | None = None,
) -> tuple[Card, ...]:
    """Convert legacy categories and cards into top-level cards.

    Sibling lists are sorted by descending sort_order. Categories whose parent
    chain never reaches the top level (a parentId cycle) are grafted at the
    top level rather than dropped.
    """
    stamp = now_ms() if now is None else now
    flat = flatten_categories(categories)

    nodes: dict[str, Card] = {}
    parent_of: dict[str, str | None] = {}
    for raw in flat:
        if raw["id"] in nodes:
            continue
        nodes[raw["id"]] = _category_card(raw, stamp)
        parent_of[raw["id"]] = raw.get("parentId")

    children_of: dict[str | None, list[Card]] = {}
    for card_id, card in nodes.items():
        parent_id = parent_of[card_id]
        key = parent_id if parent_id in nodes else None
        children_of.setdefault(key, []).append(card)

    for raw in legacy_cards:
        card = _legacy_card(raw, id_factory, stamp)
        category_id = raw.get("categoryId")
        key = category_id if category_id in nodes else None
        children_of.setdefault(key, []).append(card)

    placed: set[str] = set()

    def build(card: Card, parent_id: str | None) -> Card:
        placed.add(card.id)
        kids = sorted(
            (kid for kid in children_of.get(card.id, []) if kid.id not in placed),
            key=lambda c: -c.sort_order,
        )
        return replace(
            card,
            parent_id=parent_id,
            children=tuple(build(kid, card.id) for kid in kids),
        )

    roots = [build(card, None) for card in children_of.get(None, [])]

    for card_id, card in nodes.items():
        if card_id not in placed:
            logger.warning("Category {} is part of a parent cycle, moving to top level", card_id)
            roots.append(build(card, None))

    roots.sort(key=lambda c: -c.sort_order)
    logger.info(
        "Migrated {} categories and {} cards from legacy data", len(nodes), len(legacy_cards)
    )
    return tuple(roots)
