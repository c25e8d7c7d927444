"""In-memory page raster table with LRU eviction under a byte budget."""

import threading
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional

from PySide6.QtGui import QImage

DEFAULT_MEMORY_LIMIT = 100 * 1024 * 1024


class CacheKey(NamedTuple):
    page: int
    width: int
    height: int


@dataclass
class CacheEntry:
    image: QImage
    width: int
    height: int
    size_bytes: int
    last_access: int = 0


class PixmapCacheTable:
    """
    Page rasters keyed by (page, width, height).

    `memory_usage` is always the exact sum of the live entries' `size_bytes`.
    Every read or insert stamps the entry with a fresh access counter value;
    eviction drops the smallest stamp first. All methods are thread-safe.
    """

    def __init__(self, memory_limit: int = DEFAULT_MEMORY_LIMIT):
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._memory_limit = memory_limit
        self._memory_usage = 0
        self._access_counter = 0
        self._lock = threading.Lock()

    @property
    def memory_limit(self) -> int:
        return self._memory_limit

    @property
    def memory_usage(self) -> int:
        with self._lock:
            return self._memory_usage

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> List[CacheKey]:
        with self._lock:
            return list(self._entries)

    def contains(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    def last_access(self, key: CacheKey) -> Optional[int]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.last_access if entry else None

    def _next_access(self) -> int:
        self._access_counter += 1
        return self._access_counter

    def get(self, key: CacheKey) -> Optional[QImage]:
        """Return the cached raster and mark it as most recently used."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry.last_access = self._next_access()
            return entry.image

    def insert(self, key: CacheKey, image: QImage) -> List[CacheKey]:
        """
        Insert or replace a raster, then evict down to the budget.

        Returns:
            Keys evicted to make room (may include `key` itself when a single
            raster is larger than the whole budget)
        """
        entry = CacheEntry(image=image, width=key.width, height=key.height,
                           size_bytes=int(image.sizeInBytes()))
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                self._memory_usage -= existing.size_bytes
            entry.last_access = self._next_access()
            self._entries[key] = entry
            self._memory_usage += entry.size_bytes
            return self._evict_locked()

    def _evict_locked(self) -> List[CacheKey]:
        evicted = []
        while self._memory_usage > self._memory_limit and self._entries:
            lru_key = min(self._entries, key=lambda k: self._entries[k].last_access)
            self._memory_usage -= self._entries.pop(lru_key).size_bytes
            evicted.append(lru_key)
        return evicted

    def set_memory_limit(self, memory_limit: int) -> List[CacheKey]:
        """Change the budget and evict immediately if it is now exceeded."""
        with self._lock:
            self._memory_limit = memory_limit
            return self._evict_locked()

    def remove_page(self, page: int) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.page == page]
            for key in doomed:
                self._memory_usage -= self._entries.pop(key).size_bytes
            return len(doomed)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._memory_usage = 0
