"""
Cache Entry Module

This module provides the CacheEntry class, which wraps a cached value with
the metadata needed for lazy expiry and LRU bookkeeping.
"""

from typing import Generic, Optional, TypeVar

V = TypeVar('V')


class CacheEntry(Generic[V]):
    """
    A cached value with creation time, expiry and access statistics.

    Times are whatever the owning backend's clock returns (monotonic
    seconds by default).
    """

    __slots__ = ("value", "created_at", "expires_at", "access_count", "last_accessed")

    def __init__(self, value: V, now: float, ttl: Optional[float] = None):
        """
        Initialize a cache entry.

        Args:
            value: The value to cache
            now: Current clock reading
            ttl: Time-to-live in seconds, or None for no expiration
        """
        self.value = value
        self.created_at = now
        self.expires_at = None if ttl is None else now + ttl
        self.access_count = 0
        self.last_accessed = now

    def is_expired(self, now: float) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at

    def access(self, now: float) -> None:
        self.access_count += 1
        self.last_accessed = now

    def get_ttl(self, now: float) -> Optional[float]:
        """Remaining TTL in seconds, or None if the entry never expires."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - now)
