"""Flat id index over the nested card tree."""

from collections.abc import Iterator

from notenest.models.card import Card


class TreeIndex:
    """Map every card id to its card and to the id of its containing card.

    Built once per tree value in a single pre-order pass. Gives O(1) lookup
    and O(depth) cycle checks by walking ancestors upward.
    """

    def __init__(self, cards: tuple[Card, ...]) -> None:
        self.cards = cards
        self._by_id: dict[str, Card] = {}
        self._parent_of: dict[str, str | None] = {}
        self.duplicate_ids: set[str] = set()

        stack: list[tuple[Card, str | None]] = [(c, None) for c in reversed(cards)]
        while stack:
            card, parent_id = stack.pop()
            if card.id in self._by_id:
                # First occurrence wins, matching find_card.
                self.duplicate_ids.add(card.id)
            else:
                self._by_id[card.id] = card
                self._parent_of[card.id] = parent_id
            stack.extend((child, card.id) for child in reversed(card.children))

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, card_id: str) -> Card | None:
        return self._by_id.get(card_id)

    def parent_of(self, card_id: str) -> str | None:
        """Id of the card containing card_id (None for top-level or unknown)."""
        return self._parent_of.get(card_id)

    def ancestors(self, card_id: str) -> Iterator[str]:
        """Yield ancestor ids from the immediate parent up to the top level."""
        parent_id = self._parent_of.get(card_id)
        while parent_id is not None:
            yield parent_id
            parent_id = self._parent_of.get(parent_id)

    def can_move(self, card_id: str, target_parent_id: str | None) -> bool:
        """Same contract as ops.can_move, via an ancestor walk from the target."""
        if card_id == target_parent_id:
            return False
        if target_parent_id is None:
            return True
        return card_id not in self.ancestors(target_parent_id)

    def siblings(self, card_id: str) -> tuple[Card, ...]:
        """All cards sharing card_id's container, card_id included."""
        parent_id = self.parent_of(card_id)
        if parent_id is None:
            return self.cards
        parent = self._by_id[parent_id]
        return parent.children
