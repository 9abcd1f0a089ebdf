"""Note content cache validated against store modification times."""

import logging
from typing import Any

from sbmcp.exceptions import NotFoundError
from sbmcp.models.note import CacheEntry
from sbmcp.services.store import NoteStore

logger = logging.getLogger(__name__)


class ContentCache:
    """In-memory cache of note bodies.

    Each lookup fetches a fresh listing and compares the store's reported
    lastModified with the timestamp recorded when the body was cached. A
    cached body is served only while its timestamp is not older than the
    store's; there is no time-based expiry and no eviction.
    """

    def __init__(self, store: NoteStore) -> None:
        """Initialize the cache.

        Args:
            store: Store used for listings and body reads.
        """
        self._store = store
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._bypasses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def peek(self, name: str) -> CacheEntry | None:
        """Return the cached entry for name without validating it."""
        return self._entries.get(name)

    async def get_content(self, name: str, use_cache: bool = True) -> str:
        """Get a note body, serving from cache while it is fresh.

        Args:
            name: Note name.
            use_cache: When False, always read from the store and leave the
                cache untouched.

        Returns:
            The note body.

        Raises:
            NotFoundError: If the note is not in the store's listing.
            StoreError: If a store call fails.
        """
        if not use_cache:
            self._bypasses += 1
            return await self._store.read(name)

        files = await self._store.list_files()
        info = next((f for f in files if f.name == name), None)
        if info is None:
            raise NotFoundError(name)

        cached = self._entries.get(name)
        if cached is not None and cached.last_modified >= info.last_modified:
            self._hits += 1
            logger.debug("Cache hit for %s (lastModified=%d)", name, cached.last_modified)
            return cached.content

        self._misses += 1
        content = await self._store.read(name)
        self._entries[name] = CacheEntry(content=content, last_modified=info.last_modified)
        logger.debug("Cached %s (lastModified=%d)", name, info.last_modified)
        return content

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with cache stats.
        """
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "bypasses": self._bypasses,
        }
