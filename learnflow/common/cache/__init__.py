"""
Caching System

In-memory TTL cache with LRU eviction, a key builder for standardized keys
and the dashboard cache wrapper used by the analytics views.
"""

from learnflow.common.cache.base import CacheBackend, CacheResult
from learnflow.common.cache.entry import CacheEntry
from learnflow.common.cache.memory import MemoryCacheBackend
from learnflow.common.cache.key_builder import KeyBuilder
from learnflow.common.cache.dashboard import DashboardCache

__all__ = [
    'CacheBackend',
    'CacheResult',
    'CacheEntry',
    'MemoryCacheBackend',
    'KeyBuilder',
    'DashboardCache',
]
