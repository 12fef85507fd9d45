"""
Base database models and utilities.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tollgate.utils.datetime import utcnow


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    def to_dict(self, exclude: Optional[set[str]] = None) -> Dict[str, Any]:
        """Convert model instance to dictionary."""
        exclude = exclude or set()
        return {
            c.key: getattr(self, c.key)
            for c in sa_inspect(self).mapper.column_attrs
            if c.key not in exclude
        }

    def __repr__(self) -> str:
        attrs = [
            f"{k}={v!r}"
            for k, v in self.to_dict(exclude={"password_hash"}).items()
            if not k.startswith('_')
        ]
        return f"{self.__class__.__name__}({', '.join(attrs)})"


class TimestampMixin:
    """Mixin that adds timestamp fields to models."""
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )
