"""Bounded LRU cache keyed by string identifiers."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Generic, Optional, TypeVar

from cryptodesk.constants import CACHE_MAX_ENTRIES

V = TypeVar("V")


class CacheEntry(Generic[V]):
    def __init__(self, key: str, value: V) -> None:
        self.key = key
        self.value = value
        self.inserted_at = time.time()


class LRUCache(Generic[V]):
    """Recency order is the order of get/set calls; oldest is evicted first.

    ``has`` never changes recency.
    """

    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES) -> None:
        self.max_entries = max_entries
        self._entries = OrderedDict()  # type: OrderedDict[str, CacheEntry[V]]

    def get(self, key: str, default: Optional[V] = None) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return default
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: V) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key, value)
        if len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def has(self, key: str) -> bool:
        return key in self._entries

    def entry(self, key: str) -> Optional[CacheEntry[V]]:
        """Raw entry lookup (no recency update)."""
        return self._entries.get(key)

    def keys(self) -> list:
        """Keys from least- to most-recently used."""
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
