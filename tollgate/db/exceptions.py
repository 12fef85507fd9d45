"""
Custom exceptions for the storage layer.
"""
from typing import Any, Dict, Optional


class StorageError(Exception):
    """Base exception for all storage-related errors."""

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            context: Additional context about the error
            original_exception: The original exception that caused this error
        """
        super().__init__(message)
        self.context = context or {}
        self.original_exception = original_exception


class StorageConnectionError(StorageError):
    """Raised when the database cannot be reached."""


class StorageTimeout(StorageError):
    """Raised when a storage operation exceeds its time budget."""
