"""
Common Exception Classes

This module defines the exceptions raised across LearnFlow. Telemetry
validation problems are never raised to callers (events are dropped and
logged instead); these classes cover the failures that must propagate.
"""

from typing import Optional, Any


class BaseError(Exception):
    """Base class for all LearnFlow exceptions."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        """
        Initialize the exception.

        Args:
            message: Error message
            original_exception: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception


class ValidationError(BaseError):
    """Raised when caller-supplied input is malformed."""

    def __init__(self, message: str, errors: Optional[dict] = None):
        super().__init__(f"Validation error: {message}")
        self.errors = errors or {}


class ConfigurationError(BaseError):
    """Raised for invalid or unreadable configuration."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(f"Configuration error: {message}")
        self.config_key = config_key


class AuthorizationError(BaseError):
    """Raised when a role may not access a dashboard view."""

    def __init__(self, message: str, role: Optional[str] = None, resource: Optional[str] = None):
        """
        Initialize the authorization error.

        Args:
            message: Error message
            role: The role that was presented
            resource: The resource that was being accessed
        """
        super().__init__(f"Authorization error: {message}")
        self.role = role
        self.resource = resource


class NotFoundError(BaseError):
    """Raised when a requested resource has no data."""

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(f"{resource_type} {resource_id!r} not found")
        self.resource_type = resource_type
        self.resource_id = resource_id


class ProgressComputationError(BaseError):
    """
    Raised when replayed progress state is malformed.

    Mastery data is never fabricated: this error is meant to fail the
    request that triggered the replay.
    """

    def __init__(self, message: str, topic: Optional[str] = None):
        super().__init__(f"Progress computation error: {message}")
        self.topic = topic
