"""Thread-safe in-memory LRU cache bounded by entry count.

Design decisions
────────────────
• **OrderedDict** for O(1) LRU eviction and promotion.
• **threading.Lock** so the cache can be shared between the FastAPI event
  loop and worker threads.
• **put_if_absent** gives insert-if-missing semantics: when two callers race
  to build the same entry, the first insert wins and the loser receives the
  stored value, so duplicates are discarded instead of overwriting.
• **on_evict** is called (outside the lock) with every value that leaves
  the cache, whether by LRU eviction, overwrite, ``invalidate`` or
  ``clear``, so owners can release what the value holds.
• Keys are any hashable value; the provider factory uses
  ``(provider, model)`` tuples.

Usage in ProviderFactory
────────────────────────
>>> cache = LRUCache(max_entries=32)
>>> provider = cache.put_if_absent(("deepseek", "deepseek-chat"), new_provider)
>>> cache.get(("deepseek", "deepseek-chat")) is provider
True
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 32

EvictionHook = Callable[[Hashable, Any], None]


class LRUCache:
    """Least-Recently-Used cache bounded by number of entries."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        on_evict: EvictionHook | None = None,
    ) -> None:
        self._max_entries = max(1, max_entries)
        self._store: OrderedDict[Hashable, Any] = OrderedDict()
        self._lock = threading.Lock()
        self.on_evict = on_evict

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value (promoting it to MRU) or ``None``."""
        with self._lock:
            if key not in self._store:
                return None
            self._store.move_to_end(key)
            return self._store[key]

    def put(self, key: Hashable, value: Any) -> None:
        """Insert or overwrite *key*.  Evicts the LRU entry if full."""
        with self._lock:
            removed = []
            if key in self._store:
                old = self._store.pop(key)
                if old is not value:
                    removed.append((key, old))
            self._store[key] = value
            removed.extend(self._evict_locked())
        self._notify(removed)

    def put_if_absent(self, key: Hashable, value: Any) -> Any:
        """Store *value* unless *key* is already present.

        Returns whichever value ends up cached under *key*.
        """
        with self._lock:
            if key in self._store:
                self._store.move_to_end(key)
                logger.debug("Cache: kept existing entry for %s", key)
                return self._store[key]
            self._store[key] = value
            removed = self._evict_locked()
        self._notify(removed)
        return value

    def invalidate(self, key: Hashable) -> bool:
        """Remove a single key.  Returns ``True`` if the key existed."""
        with self._lock:
            if key not in self._store:
                return False
            value = self._store.pop(key)
        self._notify([(key, value)])
        return True

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            removed = list(self._store.items())
            self._store.clear()
        self._notify(removed)

    # ── Introspection ────────────────────────────────────────────────

    @property
    def entry_count(self) -> int:
        return len(self._store)

    def has(self, key: Hashable) -> bool:
        """Check if a key is present *without* promoting it."""
        return key in self._store

    # ── Internal ─────────────────────────────────────────────────────

    def _evict_locked(self) -> list[tuple[Hashable, Any]]:
        evicted = []
        while len(self._store) > self._max_entries:
            evicted_key, value = self._store.popitem(last=False)
            logger.debug("Cache: evicted %s", evicted_key)
            evicted.append((evicted_key, value))
        return evicted

    def _notify(self, removed: list[tuple[Hashable, Any]]) -> None:
        if self.on_evict is None:
            return
        for key, value in removed:
            self.on_evict(key, value)
