"""Protocols for dependency injection in the notes store."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class StorageProtocol(Protocol):
    """Protocol for async key-value byte stores backing the notes store."""

    async def get(self, key: str) -> bytes | None:
        """Return the bytes stored under key, or None if absent."""
        ...

    async def set(self, key: str, value: bytes) -> None:
        """Store value under key, replacing any previous value."""
        ...
