"""The notes store: owns the live card tree and persists it on every change."""

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

from loguru import logger

from notenest.config import STORAGE_KEY
from notenest.core.codec import build_export, decode_state, encode_state, parse_payload
from notenest.core.search.searcher import filter_by_title, search_cards
from notenest.core.tree.index import TreeIndex
from notenest.core.tree.ops import (
    Forest,
    insert_card,
    iter_cards,
    move_card,
    new_id,
    now_ms,
    remove_card,
    replace_card,
    set_deleted,
    update_card,
)
from notenest.models.card import (
    AppState,
    BulletBlock,
    BulletItem,
    Card,
    ContentBlock,
    Direction,
    ImportMode,
    Outcome,
)
from notenest.protocols import StorageProtocol

# Fields that only change through dedicated operations (move, delete, restore).
_PROTECTED_FIELDS = frozenset({"id", "children", "parent_id", "is_deleted", "created_at"})


def _by_sort_order(cards: Sequence[Card]) -> list[Card]:
    """Display order: descending sort_order, ties keep tree order."""
    return sorted(cards, key=lambda c: -c.sort_order)


class NotesStore:
    """Single live card tree with soft delete and write-behind persistence.

    Mutations are synchronous and return an Outcome (add_card returns the new
    id). Stale ids give Outcome.NOT_FOUND and structurally invalid requests
    give Outcome.REJECTED; neither changes state nor raises.

    Every applied mutation schedules a write of the whole tree. Inside a
    running event loop a single background writer saves the newest tree,
    so writes land in call order; otherwise the store is marked dirty and the
    next flush() writes it. Failed writes are logged and not retried; the
    in-memory tree stays authoritative.
    """

    def __init__(
        self,
        storage: StorageProtocol,
        *,
        key: str = STORAGE_KEY,
        state: AppState | None = None,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self.storage = storage
        self.key = key
        self.clock = clock
        self.id_factory = id_factory
        self._state = state or AppState()
        self._index: TreeIndex | None = None
        self._writer: asyncio.Task[None] | None = None
        self._dirty = False

    @classmethod
    async def load(
        cls,
        storage: StorageProtocol,
        *,
        key: str = STORAGE_KEY,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = new_id,
    ) -> "NotesStore":
        """Read the saved tree, migrating legacy data; start empty on failure."""
        state = AppState()
        migrated = False
        try:
            raw = await storage.get(key)
            if raw:
                payload = parse_payload(raw)
                migrated = "categories" in payload
                state = decode_state(payload, id_factory=id_factory, now=clock())
        except Exception:
            logger.exception("Failed to load state, starting with an empty tree")
        store = cls(storage, key=key, state=state, clock=clock, id_factory=id_factory)
        # Migrated data is written back in the new layout on the next flush.
        store._dirty = migrated
        logger.debug("Loaded {} cards", len(store.index))
        return store

    # --- State and persistence ---

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def cards(self) -> Forest:
        return self._state.cards

    @property
    def index(self) -> TreeIndex:
        if self._index is None or self._index.cards is not self._state.cards:
            self._index = TreeIndex(self._state.cards)
        return self._index

    @property
    def dirty(self) -> bool:
        return self._dirty

    def _commit(self, cards: Forest) -> Outcome:
        self._state = AppState(cards=cards)
        self._schedule_save()
        return Outcome.APPLIED

    def _schedule_save(self) -> None:
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._start_writer(loop)

    def _start_writer(self, loop: asyncio.AbstractEventLoop) -> None:
        # One writer at a time; it keeps writing until no newer state is waiting.
        if self._writer is None or self._writer.done() or self._writer.get_loop() is not loop:
            self._writer = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._dirty:
            self._dirty = False
            try:
                await self._write(encode_state(self._state))
            except asyncio.CancelledError:
                self._dirty = True
                raise

    async def _write(self, payload: bytes) -> None:
        try:
            await self.storage.set(self.key, payload)
        except Exception:
            logger.exception("Failed to save state")

    async def flush(self) -> None:
        """Wait until the latest state has been handed to storage."""
        loop = asyncio.get_running_loop()
        if self._dirty:
            self._start_writer(loop)
        while (
            self._writer is not None
            and self._writer.get_loop() is loop
            and not self._writer.done()
        ):
            await self._writer

    # --- Mutations ---

    def add_card(self, title: str, parent_id: str | None = None) -> str:
        """Create an active card at the front of parent_id's children.

        An unknown parent_id falls back to the top level, so the returned id
        always names a live card.
        """
        if parent_id is not None and parent_id not in self.index:
            logger.warning("Parent {} not found, adding card at top level", parent_id)
            parent_id = None

        now = self.clock()
        top = max((c.sort_order for c in self._siblings(parent_id) or ()), default=now - 1)
        card = Card(
            id=self.id_factory(),
            title=title,
            parent_id=parent_id,
            created_at=now,
            updated_at=now,
            sort_order=max(now, top + 1),
        )
        self._commit(insert_card(self.cards, parent_id, card, now=now))
        logger.debug("Added card {} under {}", card.id, parent_id)
        return card.id

    def update_card(self, card_id: str, **changes: Any) -> Outcome:
        """Apply a partial update (title, blocks, sort_order, ...) to one card."""
        protected = _PROTECTED_FIELDS.intersection(changes)
        if protected:
            msg = f"Fields {sorted(protected)!r} cannot be set through update_card"
            raise ValueError(msg)
        if card_id not in self.index:
            logger.debug("update_card: {} not found", card_id)
            return Outcome.NOT_FOUND
        if "blocks" in changes:
            changes["blocks"] = tuple(changes["blocks"])
        return self._commit(update_card(self.cards, card_id, changes, now=self.clock()))

    def update_card_blocks(self, card_id: str, blocks: Sequence[ContentBlock]) -> Outcome:
        """Replace the whole block list of a card."""
        return self.update_card(card_id, blocks=tuple(blocks))

    def can_move(self, card_id: str, target_parent_id: str | None) -> bool:
        return self.index.can_move(card_id, target_parent_id)

    def move_card(self, card_id: str, new_parent_id: str | None) -> Outcome:
        """Move a card with its subtree to the front of a new parent."""
        index = self.index
        if card_id not in index or (new_parent_id is not None and new_parent_id not in index):
            logger.debug("move_card: {} or {} not found", card_id, new_parent_id)
            return Outcome.NOT_FOUND
        if not index.can_move(card_id, new_parent_id):
            logger.warning("Invalid move: {} cannot go under {}", card_id, new_parent_id)
            return Outcome.REJECTED
        return self._commit(move_card(self.cards, card_id, new_parent_id, now=self.clock()))

    def _siblings(self, parent_id: str | None) -> tuple[Card, ...] | None:
        if parent_id is None:
            return self.cards
        parent = self.index.get(parent_id)
        return parent.children if parent is not None else None

    def reorder_children(self, parent_id: str | None, ordered_ids: Sequence[str]) -> Outcome:
        """Give siblings descending sort_order values following ordered_ids.

        Siblings missing from ordered_ids keep their relative order and go after
        the named ones. Ids that are not children of parent_id are ignored.
        """
        siblings = self._siblings(parent_id)
        if siblings is None:
            return Outcome.NOT_FOUND

        by_id = {c.id: c for c in siblings}
        named: list[str] = []
        for card_id in ordered_ids:
            if card_id in by_id and card_id not in named:
                named.append(card_id)
            elif card_id not in by_id:
                logger.debug("reorder_children: {} is not a child of {}", card_id, parent_id)
        named_set = set(named)
        rest = [c.id for c in _by_sort_order(siblings) if c.id not in named_set]
        return self._renumber(by_id, named + rest)

    def _renumber(self, by_id: Mapping[str, Card], final: Sequence[str]) -> Outcome:
        """Give the cards in final sort_order n..1; cards not listed keep theirs."""
        count = len(final)
        new_orders = {card_id: count - i for i, card_id in enumerate(final)}
        changed = [cid for cid, order in new_orders.items() if by_id[cid].sort_order != order]
        if not changed:
            return Outcome.APPLIED

        now = self.clock()
        cards = self.cards
        for card_id in changed:
            cards = replace_card(
                cards,
                card_id,
                lambda c: replace(c, sort_order=new_orders[c.id], updated_at=now),
            )
        return self._commit(cards)

    def move_card_step(self, card_id: str, direction: Direction | str) -> Outcome:
        """Swap an active card with its neighbour in display order.

        Only active siblings are renumbered; cards in the recycle bin keep
        their sort_order and updated_at.
        """
        direction = Direction(direction)
        card = self.index.get(card_id)
        if card is None:
            return Outcome.NOT_FOUND
        siblings = self.index.siblings(card_id)
        active = [c.id for c in _by_sort_order(siblings) if not c.is_deleted]
        if card_id not in active:
            return Outcome.REJECTED

        pos = active.index(card_id)
        other = pos - 1 if direction is Direction.UP else pos + 1
        if other < 0 or other >= len(active):
            return Outcome.REJECTED
        active[pos], active[other] = active[other], active[pos]
        return self._renumber({c.id: c for c in siblings}, active)

    def delete_card(self, card_id: str) -> Outcome:
        """Soft-delete a card and all of its descendants."""
        if card_id not in self.index:
            return Outcome.NOT_FOUND
        now = self.clock()
        cards = replace_card(self.cards, card_id, lambda c: set_deleted(c, True, now=now))
        logger.debug("Deleted card {}", card_id)
        return self._commit(cards)

    def restore_card(self, card_id: str, target_parent_id: str | None = None) -> Outcome:
        """Undelete a card with its subtree and move it under target_parent_id.

        A missing target falls back to the top level. A target inside the
        card's own subtree is rejected.
        """
        index = self.index
        card = index.get(card_id)
        if card is None:
            return Outcome.NOT_FOUND
        if target_parent_id is not None and target_parent_id not in index:
            logger.warning("Restore target {} not found, restoring to top level", target_parent_id)
            target_parent_id = None
        if not index.can_move(card_id, target_parent_id):
            logger.warning("Invalid restore: {} cannot go under {}", card_id, target_parent_id)
            return Outcome.REJECTED

        now = self.clock()
        restored = replace(set_deleted(card, False, now=now), parent_id=target_parent_id)
        without = remove_card(self.cards, card_id, now=now)
        logger.debug("Restored card {} under {}", card_id, target_parent_id)
        return self._commit(insert_card(without, target_parent_id, restored, now=now))

    def permanently_delete_card(self, card_id: str) -> Outcome:
        """Remove a card in the recycle bin, subtree included. Irreversible."""
        card = self.index.get(card_id)
        if card is None:
            return Outcome.NOT_FOUND
        if not card.is_deleted:
            logger.warning("Card {} is not in the recycle bin, refusing to purge", card_id)
            return Outcome.REJECTED
        logger.debug("Purged card {}", card_id)
        return self._commit(remove_card(self.cards, card_id, now=self.clock()))

    # --- Views ---

    def get_card(self, card_id: str | None) -> Card | None:
        if card_id is None:
            return None
        return self.index.get(card_id)

    def get_children(self, parent_id: str | None = None) -> list[Card]:
        """Active children of a card (or active top-level cards), display order."""
        siblings = self._siblings(parent_id)
        if siblings is None:
            return []
        return [c for c in _by_sort_order(siblings) if not c.is_deleted]

    def search_cards(self, query: str, scope_id: str | None = None) -> list[Card]:
        return search_cards(self.cards, query, scope_id=scope_id)

    def get_deleted_cards(self, query: str | None = None) -> list[Card]:
        """Cards in the recycle bin.

        Descent stops at a deleted card, so a deleted subtree is reported once,
        through its topmost deleted card.
        """
        deleted: list[Card] = []
        todo = list(reversed(self.cards))
        while todo:
            card = todo.pop()
            if card.is_deleted:
                deleted.append(card)
            else:
                todo.extend(reversed(card.children))
        if query:
            return filter_by_title(deleted, query)
        return deleted

    @property
    def deleted_count(self) -> int:
        return len(self.get_deleted_cards())

    # --- Export / import ---

    def export_data(self, *, exported_at: datetime | None = None) -> bytes:
        return build_export(self.cards, exported_at=exported_at)

    def import_data(
        self,
        data: Mapping[str, Any] | bytes | str,
        mode: ImportMode | str = ImportMode.MERGE,
    ) -> int:
        """Load exported (or legacy) data. Returns the number of top-level cards.

        override replaces the whole tree. merge appends the imported top-level
        cards after the existing ones, giving fresh ids to imported cards,
        blocks and bullet items whose ids are already taken.
        """
        mode = ImportMode(mode)
        now = self.clock()
        imported = decode_state(parse_payload(data), id_factory=self.id_factory, now=now).cards

        if mode is ImportMode.OVERRIDE:
            self._commit(imported)
        else:
            card_ids = {c.id for c in iter_cards(self.cards)}
            block_ids = {b.id for c in iter_cards(self.cards) for b in c.blocks}
            item_ids = {
                item.id
                for c in iter_cards(self.cards)
                for b in c.blocks
                if isinstance(b, BulletBlock)
                for item in b.items
            }
            remapped = tuple(
                self._remap_ids(card, None, card_ids, block_ids, item_ids) for card in imported
            )
            self._commit((*self.cards, *remapped))

        logger.info("Imported {} top-level cards ({})", len(imported), mode.value)
        return len(imported)

    def _remap_item(self, item: BulletItem, item_ids: set[str]) -> BulletItem:
        if item.id in item_ids:
            item = replace(item, id=self.id_factory())
        item_ids.add(item.id)
        return item

    def _remap_ids(
        self,
        card: Card,
        parent_id: str | None,
        card_ids: set[str],
        block_ids: set[str],
        item_ids: set[str],
    ) -> Card:
        card_id = card.id
        if card_id in card_ids:
            card_id = self.id_factory()
            logger.debug("Import: card id {} taken, using {}", card.id, card_id)
        card_ids.add(card_id)

        blocks = []
        for block in card.blocks:
            if block.id in block_ids:
                block = replace(block, id=self.id_factory())
            block_ids.add(block.id)
            if isinstance(block, BulletBlock):
                items = tuple(self._remap_item(item, item_ids) for item in block.items)
                block = replace(block, items=items)
            blocks.append(block)

        return replace(
            card,
            id=card_id,
            parent_id=parent_id,
            blocks=tuple(blocks),
            children=tuple(
                self._remap_ids(child, card_id, card_ids, block_ids, item_ids)
                for child in card.children
            ),
        )
