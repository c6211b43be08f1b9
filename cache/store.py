"""
cache/store.py -- In-memory TTL cache for booking directory lookups.

Avoids re-querying the directory for the same booking/email pair or customer
on every request. Entries expire lazily: a read after the entry's TTL has
elapsed behaves as a miss and removes the entry. cleanup() sweeps the rest so
memory stays bounded even for keys that are never read again.

get_or_set() is deliberately NOT single-flight. Two concurrent misses on the
same key each await the factory and the last writer wins. That is tolerated
because every factory here is a read-only, idempotent directory lookup; the
cost is an occasional duplicate request under burst load.

Usage:
    cache = TTLCache(default_ttl=300)
    cache.set("customer:42", customer)
    cache.get("customer:42")                     # value or None
    await cache.get_or_set(key, lambda: directory.find_customer_by_id("42"))
    cache.cleanup()                              # call periodically
"""

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger("rentalportal.cache")

_DEFAULT_TTL = 5 * 60  # 5 minutes in seconds


@dataclass
class CacheEntry:
    data: Any
    stored_at: float
    ttl: float


class TTLCache:
    def __init__(self, default_ttl: float = _DEFAULT_TTL, clock: Callable[[], float] = time.time) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for key, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at > entry.ttl:
                del self._entries[key]
                logger.debug("Cache expired and removed: %s", key)
                return None
        logger.debug("Cache hit: %s", key)
        return entry.data

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        """Store data under key, replacing any existing entry."""
        effective_ttl = ttl if ttl is not None else self.default_ttl
        with self._lock:
            self._entries[key] = CacheEntry(data=data, stored_at=self._clock(), ttl=effective_ttl)
        logger.debug("Cache set: %s (ttl=%ss)", key, effective_ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cache cleared")

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {"size": len(self._entries), "keys": list(self._entries)}

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Optional[Any]:
        """Return the cached value, or await factory() and cache its result.

        A None result is returned but not stored, so a not-found is asked
        again next time instead of being pinned for the whole TTL.
        Not single-flight -- see the module docstring.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        try:
            data = await factory()
        except Exception:
            logger.error("Cache factory failed for key %s", key)
            raise
        if data is not None:
            self.set(key, data, ttl)
        return data

    def cleanup(self) -> int:
        """Delete all expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.stored_at > e.ttl]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Cache cleanup: removed %d expired items", len(expired))
        return len(expired)
