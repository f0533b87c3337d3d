"""
Memory Cache Backend Module

In-memory cache backend with LRU eviction and lazy TTL expiry.

The backend holds no lock: every operation completes without suspending,
so under the single event loop no other task can observe a half-applied
change. Expired entries are dropped when they are read.
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, TypeVar

from learnflow.common.logger import app_logger
from learnflow.common.cache.base import CacheBackend, CacheResult
from learnflow.common.cache.entry import CacheEntry

logger = app_logger.getChild("cache.memory")

V = TypeVar('V')


class MemoryCacheBackend(CacheBackend[V]):
    """
    In-memory cache backend implementation.

    Features:
    - LRU eviction when reaching maximum size
    - Lazy expiry checked on read
    - Hit/miss/eviction statistics
    """

    def __init__(self, max_size: int = 10000, name: str = "memory",
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the memory cache backend.

        Args:
            max_size: Maximum number of entries to store
            name: Name for this cache backend
            clock: Time source in seconds
        """
        self._cache: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._max_size = max_size
        self._name = name
        self._clock = clock

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def name(self) -> str:
        return self._name

    async def get(self, key: str) -> CacheResult[V]:
        now = self._clock()
        entry = self._cache.get(key)

        if entry is None:
            self._misses += 1
            return CacheResult(hit=False, source=self.name)

        if entry.is_expired(now):
            del self._cache[key]
            self._expirations += 1
            self._misses += 1
            return CacheResult(hit=False, source=self.name)

        entry.access(now)
        self._cache.move_to_end(key)
        self._hits += 1
        return CacheResult(hit=True, value=entry.value, ttl=entry.get_ttl(now), source=self.name)

    async def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        if key not in self._cache and len(self._cache) >= self._max_size:
            self._evict_entries()
        self._cache[key] = CacheEntry(value, self._clock(), ttl)
        self._cache.move_to_end(key)

    async def delete(self, key: str) -> bool:
        if key in self._cache:
            del self._cache[key]
            return True
        return False

    async def keys(self) -> List[str]:
        return list(self._cache.keys())

    async def clear(self) -> None:
        self._cache.clear()

    async def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            'backend': self.name,
            'size': len(self._cache),
            'max_size': self._max_size,
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': self._hits / total if total > 0 else 0,
            'evictions': self._evictions,
            'expirations': self._expirations
        }

    def _evict_entries(self) -> None:
        """Evict least recently used entries until there is room for one more."""
        while self._cache and len(self._cache) >= self._max_size:
            key, _ = self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted cache entry {key}")

    def __len__(self) -> int:
        return len(self._cache)
