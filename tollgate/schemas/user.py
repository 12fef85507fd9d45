"""
User, session and login history response models.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: str
    email_verified: bool
    is_active: bool
    last_login_at: Optional[datetime] = None


class DeviceInfo(BaseModel):
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    device_type: Optional[str] = None
    device_name: Optional[str] = None


class SessionInfo(BaseModel):
    """Session information model."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    device_info: Optional[DeviceInfo] = None
    is_current: bool = False
    created_at: datetime
    last_active_at: datetime
    expires_at: datetime


class RevokedSessions(BaseModel):
    revoked: int


class LoginHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ip_address: Optional[str]
    user_agent: Optional[str]
    device_info: Optional[DeviceInfo] = None
    outcome: str
    created_at: datetime


class LoginHistoryPage(BaseModel):
    items: List[LoginHistoryEntry]
    total: int
    limit: int
    offset: int
