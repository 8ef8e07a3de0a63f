"""Per-conversation cache of pagers with idle expiry."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CacheEntry(Generic[T]):
    """Cache entry whose lifetime is renewed on every access."""

    def __init__(self, value: T, ttl_seconds: int) -> None:
        """Initialize cache entry with value and TTL."""
        self.value = value
        self._ttl = timedelta(seconds=ttl_seconds)
        self.expires_at = datetime.now(tz=UTC) + self._ttl

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return datetime.now(tz=UTC) > self.expires_at

    def touch(self) -> None:
        """Push the expiry back by one TTL."""
        self.expires_at = datetime.now(tz=UTC) + self._ttl


class PageCache(Generic[T]):
    """Holds one value (a pager) per conversation id.

    Entries are only replaced or dropped by key, so one conversation never
    touches another's state.
    """

    def __init__(self, ttl_seconds: int = 120) -> None:
        """Initialize empty cache."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl_seconds = ttl_seconds
        self._entries: dict[str, CacheEntry[T]] = {}

    def get(self, conversation_id: str) -> T | None:
        """Return the cached value for ``conversation_id`` if still live."""
        entry = self._entries.get(conversation_id)
        if entry and not entry.is_expired():
            entry.touch()
            LOGGER.debug("Page cache hit for conversation %s", conversation_id)
            return entry.value

        if entry:
            LOGGER.debug("Page cache expired for conversation %s", conversation_id)
            del self._entries[conversation_id]

        LOGGER.debug("Page cache miss for conversation %s", conversation_id)
        return None

    def set(self, conversation_id: str, value: T) -> None:
        """Store ``value`` for ``conversation_id``."""
        self._entries[conversation_id] = CacheEntry(value, self._ttl_seconds)

    def invalidate(self, conversation_id: str | None = None) -> int:
        """Drop one conversation, or every conversation when no id is given.

        Returns:
            Number of entries invalidated
        """
        if conversation_id is not None:
            removed = self._entries.pop(conversation_id, None)
            count = 1 if removed is not None else 0
            LOGGER.info(
                "Invalidated %d page cache entries for conversation %s",
                count,
                conversation_id,
            )
            return count

        count = len(self._entries)
        self._entries.clear()
        LOGGER.info("Invalidated all %d page cache entries", count)
        return count

    def cleanup_expired(self) -> int:
        """Remove all expired entries."""
        expired = [key for key, entry in self._entries.items() if entry.is_expired()]
        for key in expired:
            del self._entries[key]

        if expired:
            LOGGER.debug("Cleaned up %d expired page cache entries", len(expired))

        return len(expired)

    def size(self) -> int:
        """Get current cache size."""
        return len(self._entries)

    def __contains__(self, conversation_id: object) -> bool:
        entry = self._entries.get(conversation_id)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired()


__all__ = ["PageCache"]
