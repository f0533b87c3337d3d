"""
Common Components for LearnFlow

This package contains infrastructure shared across the telemetry, progress
and dashboard packages.

Key components:
1. Logging - Centralized logging configuration
2. Configuration - Typed settings from files and environment
3. Errors - Common exception hierarchy
4. Cache - TTL memory cache with prefix invalidation
5. Metrics - Best-effort metrics export backends
"""

from learnflow.common.logger import app_logger

__all__ = [
    'app_logger',
]
