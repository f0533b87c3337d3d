"""
Base Cache Module

This module defines the interface every cache backend implements and the
result type returned by cache reads.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar

V = TypeVar('V')


@dataclass
class CacheResult(Generic[V]):
    """
    Result of a cache read.

    Attributes:
        hit: Whether a live value was found
        value: The cached value on a hit
        ttl: Remaining time-to-live in seconds
        source: Name of the backend that answered
    """
    hit: bool
    value: Optional[V] = None
    ttl: Optional[float] = None
    source: Optional[str] = None


class CacheBackend(Generic[V], ABC):
    """
    Abstract interface for cache backends.

    Backends never raise on ordinary operations: a miss and an expiry look
    the same to the caller.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of this cache backend."""
        pass

    @abstractmethod
    async def get(self, key: str) -> CacheResult[V]:
        """Retrieve a value from the cache."""
        pass

    @abstractmethod
    async def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        """Store a value, expiring after ``ttl`` seconds (never when None)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key; returns True if it was present."""
        pass

    @abstractmethod
    async def keys(self) -> List[str]:
        """List the keys currently held (expired entries may be included)."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the cache."""
        pass

    async def delete_matching(self, fragment: str) -> int:
        """
        Delete every key containing ``fragment``.

        Args:
            fragment: Substring to match against keys

        Returns:
            Number of deleted entries
        """
        count = 0
        for key in await self.keys():
            if fragment in key and await self.delete(key):
                count += 1
        return count
