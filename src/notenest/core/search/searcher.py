"""Case-insensitive substring search over the card tree."""

from notenest.core.tree.ops import find_card
from notenest.models.card import BulletBlock, Card, TextBlock


def card_matches(card: Card, needle: str) -> bool:
    """Match needle (already lower-cased) against title, text and bullet content."""
    if needle in card.title.lower():
        return True
    for block in card.blocks:
        if isinstance(block, TextBlock) and needle in block.content.lower():
            return True
        if isinstance(block, BulletBlock) and any(
            needle in item.content.lower() for item in block.items
        ):
            return True
    return False


def search_cards(
    cards: tuple[Card, ...],
    query: str,
    *,
    scope_id: str | None = None,
) -> list[Card]:
    """Return active cards matching query, in pre-order.

    Args:
        cards: The forest to search.
        query: Substring to look for; matched case-insensitively.
        scope_id: Restrict to the subtree rooted at this card (the card itself
            included). None, or an id that no longer exists, searches everything.

    Deleted cards never match, but their active descendants are still visited.
    """
    needle = query.lower()
    scope = cards
    if scope_id is not None:
        root = find_card(cards, scope_id)
        if root is not None:
            scope = (root,)

    results: list[Card] = []
    todo = list(reversed(scope))
    while todo:
        card = todo.pop()
        if not card.is_deleted and card_matches(card, needle):
            results.append(card)
        todo.extend(reversed(card.children))
    return results


def filter_by_title(cards: list[Card], query: str) -> list[Card]:
    """Keep cards whose title contains query (case-insensitive)."""
    needle = query.lower()
    return [c for c in cards if needle in c.title.lower()]
