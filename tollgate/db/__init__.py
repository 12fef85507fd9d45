"""
Storage layer: engine and session handling, models and helpers.
"""
from .base import Base, TimestampMixin
from .exceptions import StorageConnectionError, StorageError, StorageTimeout
from .models import Credential, LoginHistory, RevokedToken, UserSession
from .session import Database

__all__ = [
    "Base",
    "Credential",
    "Database",
    "LoginHistory",
    "RevokedToken",
    "StorageConnectionError",
    "StorageError",
    "StorageTimeout",
    "TimestampMixin",
    "UserSession",
]
