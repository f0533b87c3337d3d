"""
Dashboard Cache

TTL memoization of dashboard aggregates. Every successful event write
invalidates all keys carrying the dashboard namespace.
"""

from typing import Any, Dict, Optional

from learnflow.common.logger import app_logger
from learnflow.common.cache.base import CacheBackend
from learnflow.common.cache.memory import MemoryCacheBackend

logger = app_logger.getChild("cache.dashboard")


class DashboardCache:
    """Read-through cache for dashboard views."""

    def __init__(self, backend: Optional[CacheBackend] = None, namespace: str = "dashboard",
                 enabled: bool = True):
        """
        Args:
            backend: Cache backend (defaults to an in-memory backend)
            namespace: Key prefix invalidated on every event write
            enabled: When False reads always miss and writes are dropped
        """
        self.backend = backend if backend is not None else MemoryCacheBackend(name="dashboard")
        self.namespace = namespace
        self.enabled = enabled
        self._generation = 0

    @property
    def generation(self) -> int:
        """Number of invalidations so far; a value computed across a change is stale."""
        return self._generation

    async def get_cached_metrics(self, key: str) -> Optional[Any]:
        """Return the cached value for ``key``, or None on miss or expiry."""
        if not self.enabled:
            return None
        result = await self.backend.get(key)
        return result.value if result.hit else None

    async def set_cached_metrics(self, key: str, value: Any, ttl: float, generation: Optional[int] = None) -> None:
        """
        Store ``value`` under ``key``.

        Args:
            generation: Generation read before ``value`` was computed; the
                value is not stored if an invalidation happened since
        """
        if generation is not None and generation != self._generation:
            logger.debug(f"Not caching {key!r}: invalidated while computing")
            return
        if self.enabled:
            await self.backend.set(key, value, ttl)

    async def invalidate_cache(self, pattern: Optional[str] = None) -> int:
        """
        Drop entries whose key contains ``pattern``.

        Args:
            pattern: Key fragment (defaults to the namespace prefix)

        Returns:
            Number of removed entries
        """
        fragment = pattern if pattern is not None else f"{self.namespace}:"
        self._generation += 1
        removed = await self.backend.delete_matching(fragment)
        if removed:
            logger.debug(f"Invalidated {removed} cache entries matching {fragment!r}")
        return removed

    async def clear_all(self) -> None:
        self._generation += 1
        await self.backend.clear()

    async def get_stats(self) -> Dict[str, Any]:
        return await self.backend.get_stats()
