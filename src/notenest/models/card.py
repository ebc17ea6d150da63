"""Domain models for the notes card tree."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class BulletItem:
    """A single line of a bullet-list block."""

    id: str
    content: str
    indent: int = 0


@dataclass(frozen=True)
class TextBlock:
    """Free text paragraph."""

    id: str
    content: str = ""


@dataclass(frozen=True)
class BulletBlock:
    """Ordered bullet list with per-item indentation."""

    id: str
    items: tuple[BulletItem, ...] = ()


@dataclass(frozen=True)
class ImageBlock:
    """Embedded image, stored as a data URL."""

    id: str
    data_url: str
    width: int = 100


@dataclass(frozen=True)
class CheckboxBlock:
    id: str
    checked: bool = False


@dataclass(frozen=True)
class LinkBlock:
    id: str
    url: str = ""


ContentBlock = TextBlock | BulletBlock | ImageBlock | CheckboxBlock | LinkBlock


@dataclass(frozen=True)
class Card:
    """A node in the notes tree.

    Children are owned by value: a card's subtree lives in ``children``,
    and ``parent_id`` must name the card whose ``children`` contains it.
    Timestamps are epoch milliseconds.
    """

    id: str
    title: str
    parent_id: str | None
    created_at: int
    updated_at: int
    sort_order: int
    blocks: tuple[ContentBlock, ...] = ()
    children: tuple["Card", ...] = ()
    is_deleted: bool = False


@dataclass(frozen=True)
class AppState:
    """The persisted root: top-level cards, each with its nested subtree."""

    cards: tuple[Card, ...] = field(default_factory=tuple)


class Outcome(Enum):
    """Result of a store mutation."""

    APPLIED = "applied"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"

    def __bool__(self) -> bool:
        return self is Outcome.APPLIED


class ImportMode(str, Enum):
    MERGE = "merge"
    OVERRIDE = "override"


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
