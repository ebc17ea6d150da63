"""Encode and decode the card tree to its JSON layout.

The persisted and exported layouts use camelCase keys::

    {"cards": [{"id", "title", "blocks", "parentId", "children",
                "sortOrder", "createdAt", "updatedAt", "isDeleted"}, ...]}

Exports add ``version`` and ``exportedAt``. Decoding repairs ``parentId`` from
containment and accepts legacy cards that carry ``content``/``bullets``
instead of ``blocks``.
"""

import json
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from notenest.config import (
    EXPORT_VERSION,
    MAX_BULLET_INDENT,
    MAX_IMAGE_WIDTH,
    MIN_IMAGE_WIDTH,
)
from notenest.core.tree.ops import new_id, now_ms
from notenest.models.card import (
    AppState,
    BulletBlock,
    BulletItem,
    Card,
    CheckboxBlock,
    ContentBlock,
    ImageBlock,
    LinkBlock,
    TextBlock,
)

IdFactory = Callable[[], str]


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


# --- Encoding ---


def encode_block(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"id": block.id, "type": "text", "content": block.content}
    if isinstance(block, BulletBlock):
        return {
            "id": block.id,
            "type": "bullets",
            "items": [
                {"id": item.id, "content": item.content, "indent": item.indent}
                for item in block.items
            ],
        }
    if isinstance(block, ImageBlock):
        return {"id": block.id, "type": "image", "dataUrl": block.data_url, "width": block.width}
    if isinstance(block, CheckboxBlock):
        return {"id": block.id, "type": "checkbox", "checked": block.checked}
    if isinstance(block, LinkBlock):
        return {"id": block.id, "type": "link", "url": block.url}
    msg = f"Unknown block type: {type(block).__name__}"
    raise TypeError(msg)


def encode_card(card: Card) -> dict[str, Any]:
    return {
        "id": card.id,
        "title": card.title,
        "blocks": [encode_block(b) for b in card.blocks],
        "parentId": card.parent_id,
        "children": [encode_card(c) for c in card.children],
        "sortOrder": card.sort_order,
        "createdAt": card.created_at,
        "updatedAt": card.updated_at,
        "isDeleted": card.is_deleted,
    }


def encode_state(state: AppState) -> bytes:
    """Serialize the persisted root to UTF-8 JSON bytes."""
    data = {"cards": [encode_card(c) for c in state.cards]}
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


def _iso_utc(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_export(cards: tuple[Card, ...], *, exported_at: datetime | None = None) -> bytes:
    """Build the export file contents (pretty-printed JSON bytes)."""
    moment = exported_at or datetime.now(tz=UTC)
    data = {
        "version": EXPORT_VERSION,
        "exportedAt": _iso_utc(moment),
        "cards": [encode_card(c) for c in cards],
    }
    return (json.dumps(data, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def export_filename(moment: datetime | None = None) -> str:
    """Default download name, e.g. ``notes-backup-2024-05-01.json``."""
    moment = moment or datetime.now(tz=UTC)
    return f"notes-backup-{moment.astimezone(UTC):%Y-%m-%d}.json"


# --- Decoding ---


def decode_bullet_item(raw: Mapping[str, Any], *, id_factory: IdFactory = new_id) -> BulletItem:
    indent = _clamp(int(raw.get("indent") or 0), 0, MAX_BULLET_INDENT)
    return BulletItem(id=raw.get("id") or id_factory(), content=raw.get("content", ""), indent=indent)


def decode_block(raw: Mapping[str, Any], *, id_factory: IdFactory = new_id) -> ContentBlock:
    """Decode one content block. Raises ValueError on an unknown type tag."""
    block_id = raw.get("id") or id_factory()
    kind = raw.get("type")
    if kind == "text":
        return TextBlock(id=block_id, content=raw.get("content", ""))
    if kind == "bullets":
        items = tuple(
            decode_bullet_item(item, id_factory=id_factory) for item in raw.get("items", [])
        )
        return BulletBlock(id=block_id, items=items)
    if kind == "image":
        width = _clamp(int(raw.get("width") or MAX_IMAGE_WIDTH), MIN_IMAGE_WIDTH, MAX_IMAGE_WIDTH)
        return ImageBlock(id=block_id, data_url=raw.get("dataUrl", ""), width=width)
    if kind == "checkbox":
        return CheckboxBlock(id=block_id, checked=bool(raw.get("checked", False)))
    if kind == "link":
        return LinkBlock(id=block_id, url=raw.get("url", ""))
    msg = f"Unknown block type {kind!r} in block {block_id!r}"
    raise ValueError(msg)


def _with_legacy_blocks(
    raw: Mapping[str, Any], blocks: list[ContentBlock], id_factory: IdFactory
) -> list[ContentBlock]:
    """Fold the pre-block ``content`` and ``bullets`` fields into blocks.

    ``content`` only fills a card that has no blocks; ``bullets`` are always
    appended as a bullet block.
    """
    blocks = list(blocks)
    content = raw.get("content")
    if not blocks and isinstance(content, str) and content.strip():
        blocks.append(TextBlock(id=id_factory(), content=content))
    bullets = raw.get("bullets") or []
    if bullets:
        items = tuple(decode_bullet_item(b, id_factory=id_factory) for b in bullets)
        blocks.append(BulletBlock(id=id_factory(), items=items))
    return blocks


def decode_card(
    raw: Mapping[str, Any],
    *,
    parent_id: str | None,
    id_factory: IdFactory = new_id,
    now: int | None = None,
) -> Card:
    """Decode a card and its subtree.

    parent_id is the id of the containing card; it overrides whatever
    ``parentId`` the payload carries so containment and parent links agree.
    """
    stamp = now_ms() if now is None else now
    card_id = raw["id"]

    blocks = [decode_block(b, id_factory=id_factory) for b in raw.get("blocks") or []]
    blocks = _with_legacy_blocks(raw, blocks, id_factory)

    if raw.get("parentId", parent_id) != parent_id:
        logger.debug("Card {} had parentId {!r}, fixed to {!r}", card_id, raw.get("parentId"), parent_id)

    children = tuple(
        decode_card(child, parent_id=card_id, id_factory=id_factory, now=stamp)
        for child in raw.get("children") or []
    )
    return Card(
        id=card_id,
        title=raw.get("title") or "",
        parent_id=parent_id,
        created_at=int(raw.get("createdAt") or stamp),
        updated_at=int(raw.get("updatedAt") or stamp),
        sort_order=int(raw.get("sortOrder") or 0),
        blocks=tuple(blocks),
        children=children,
        is_deleted=bool(raw.get("isDeleted", False)),
    )


def decode_cards(
    raw_cards: list[Mapping[str, Any]],
    *,
    id_factory: IdFactory = new_id,
    now: int | None = None,
) -> tuple[Card, ...]:
    return tuple(
        decode_card(raw, parent_id=None, id_factory=id_factory, now=now) for raw in raw_cards
    )


def decode_state(
    data: Mapping[str, Any],
    *,
    id_factory: IdFactory = new_id,
    now: int | None = None,
) -> AppState:
    """Decode a persisted or exported payload, migrating the legacy schema.

    The only structural check is for the legacy ``categories`` marker; the
    payload is otherwise assumed to be well formed.
    """
    if isinstance(data.get("categories"), list):
        from notenest.core.importer.legacy import migrate_legacy_data

        logger.info("Migrating legacy data...")
        cards = migrate_legacy_data(
            data["categories"], data.get("cards") or [], id_factory=id_factory, now=now
        )
        return AppState(cards=cards)
    return AppState(cards=decode_cards(data.get("cards") or [], id_factory=id_factory, now=now))


def parse_payload(data: Mapping[str, Any] | bytes | str) -> Mapping[str, Any]:
    """Accept raw bytes/str or an already decoded mapping."""
    if isinstance(data, bytes | str):
        parsed = json.loads(data)
        if not isinstance(parsed, dict):
            msg = f"Expected a JSON object, got {type(parsed).__name__}"
            raise ValueError(msg)
        return parsed
    return data
