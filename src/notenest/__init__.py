"""Nested note cards with a recycle bin."""

from notenest.core.storage import MemoryStorage, SqliteStorage
from notenest.core.store import NotesStore
from notenest.models.card import AppState, Card, Direction, ImportMode, Outcome
from notenest.protocols import StorageProtocol

__all__ = [
    "AppState",
    "Card",
    "Direction",
    "ImportMode",
    "MemoryStorage",
    "NotesStore",
    "Outcome",
    "SqliteStorage",
    "StorageProtocol",
]
