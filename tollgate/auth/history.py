"""
Append-only audit log of login attempts.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func, select

from tollgate.db.models import LoginHistory
from tollgate.db.session import Database
from tollgate.db.utils import DetachedWriter
from tollgate.utils.datetime import utcnow
from tollgate.utils.device import parse_device

logger = logging.getLogger(__name__)


class LoginOutcome(str, Enum):
    SUCCESS = "success"
    BAD_PASSWORD = "bad_password"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_INACTIVE = "account_inactive"
    EMAIL_NOT_VERIFIED = "email_not_verified"


class LoginHistoryRecorder:
    """Writes one row per login attempt. Recording never fails a login."""

    def __init__(
        self,
        database: Database,
        writer: DetachedWriter,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = database
        self.writer = writer
        self.clock = clock

    async def record(
        self,
        user_id: Optional[int],
        ip: Optional[str],
        device: Optional[str],
        outcome: LoginOutcome,
        now: Optional[datetime] = None,
    ) -> None:
        entry = LoginHistory(
            user_id=user_id,
            ip_address=ip,
            user_agent=device[:512] if device else None,
            device_info=parse_device(device),
            outcome=LoginOutcome(outcome).value,
            created_at=now or self.clock(),
        )
        try:
            await self.writer.shielded(self._insert(entry), name="login_history.record")
        except Exception:
            logger.error(
                f"Failed to record login attempt (user={user_id}, outcome={entry.outcome})",
                exc_info=True,
            )

    async def _insert(self, entry: LoginHistory) -> None:
        async with self.db.get_session() as session:
            session.add(entry)

    async def list_for_user(
        self, user_id: int, limit: int = 20, offset: int = 0
    ) -> Tuple[List[LoginHistory], int]:
        """Newest first, with the total count for pagination."""
        async with self.db.get_session() as session:
            total = await session.scalar(
                select(func.count()).select_from(LoginHistory).where(LoginHistory.user_id == user_id)
            )
            result = await session.execute(
                select(LoginHistory)
                .where(LoginHistory.user_id == user_id)
                .order_by(LoginHistory.created_at.desc(), LoginHistory.id.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), total or 0
