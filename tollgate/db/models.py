"""
Tables owned by the credential lifecycle.

Only the lockout and last-login columns of ``users`` are written here; user
rows themselves are created by whatever owns registration.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Credential(TimestampMixin, Base):
    """Login credential and lockout state for a user."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(32), default="user")
    email_verified: Mapped[bool] = mapped_column(default=False)
    is_active: Mapped[bool] = mapped_column(default=True)

    failed_login_attempts: Mapped[int] = mapped_column(default=0, server_default="0")
    locked_until: Mapped[Optional[datetime]] = mapped_column(default=None)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(default=None)
    last_login_ip: Mapped[Optional[str]] = mapped_column(String(45), default=None)

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


class UserSession(Base):
    """A live login, bound to the fingerprint of its current refresh token."""
    __tablename__ = "user_sessions"
    __table_args__ = (
        CheckConstraint("expires_at > created_at", name="ck_user_sessions_expiry"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    token_fingerprint: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), default=None)
    device_info: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, default=None)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), default=None)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    last_active_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)


class RevokedToken(Base):
    """Blacklist entry. Present means invalid, whatever the token's expiry says."""
    __tablename__ = "revoked_tokens"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    fingerprint: Mapped[str] = mapped_column(String(64), unique=True)
    user_id: Mapped[Optional[int]] = mapped_column(default=None, index=True)
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    revoked_at: Mapped[datetime] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(32), default="logout")


class LoginHistory(Base):
    """Append-only record of a login attempt."""
    __tablename__ = "login_history"
    __table_args__ = (Index("ix_login_history_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), default=None
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), default=None)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), default=None)
    device_info: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, default=None)
    outcome: Mapped[str] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(nullable=False)
