"""
Credential lookups and the lockout counter.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, or_, select, update

from tollgate.db.models import Credential
from tollgate.db.session import Database
from tollgate.db.utils import with_timeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureResult:
    attempts: int
    locked_until: Optional[datetime]

    @property
    def newly_locked(self) -> bool:
        return self.locked_until is not None


class CredentialStore:
    """Reads credentials and applies login outcomes to them."""

    def __init__(
        self,
        database: Database,
        *,
        lockout_threshold: int = 5,
        lockout_duration: timedelta = timedelta(minutes=15),
        timeout: Optional[float] = None,
    ) -> None:
        self.db = database
        self.lockout_threshold = lockout_threshold
        self.lockout_duration = lockout_duration
        self.timeout = timeout

    async def get_by_email(self, email: str) -> Optional[Credential]:
        return await with_timeout(
            self._get(Credential.email == email.strip().lower()), self.timeout, "credentials.get_by_email"
        )

    async def get_by_id(self, user_id: int) -> Optional[Credential]:
        return await with_timeout(self._get(Credential.id == user_id), self.timeout, "credentials.get_by_id")

    async def _get(self, criterion) -> Optional[Credential]:
        async with self.db.get_session() as session:
            result = await session.execute(select(Credential).where(criterion))
            return result.scalar_one_or_none()

    async def record_failure(self, user_id: int, now: datetime) -> Optional[FailureResult]:
        """Count a failed password in one conditional statement.

        The row only matches while the account is unlocked, so of any number
        of concurrent failures exactly one crosses the threshold and sets the
        lock; it also resets the counter. Returns None when the account was
        already locked.
        """
        attempts = Credential.failed_login_attempts + 1
        crossing = attempts >= self.lockout_threshold
        stmt = (
            update(Credential)
            .where(Credential.id == user_id)
            .where(or_(Credential.locked_until.is_(None), Credential.locked_until <= now))
            .values(
                failed_login_attempts=case((crossing, 0), else_=attempts),
                locked_until=case((crossing, now + self.lockout_duration), else_=None),
            )
            .returning(Credential.failed_login_attempts, Credential.locked_until)
            .execution_options(synchronize_session=False)
        )

        async def run() -> Optional[FailureResult]:
            async with self.db.get_session() as session:
                row = (await session.execute(stmt)).first()
            if row is None:
                return None
            return FailureResult(attempts=row[0], locked_until=row[1])

        result = await with_timeout(run(), self.timeout, "credentials.record_failure")
        if result is not None and result.newly_locked:
            logger.warning(f"Account {user_id} locked until {result.locked_until.isoformat()}")
        return result

    async def record_success(self, user_id: int, now: datetime, ip: Optional[str]) -> None:
        """Reset the failure counter, clear any lock and stamp the last login."""
        stmt = (
            update(Credential)
            .where(Credential.id == user_id)
            .values(
                failed_login_attempts=0,
                locked_until=None,
                last_login_at=now,
                last_login_ip=ip,
            )
            .execution_options(synchronize_session=False)
        )

        async def run() -> None:
            async with self.db.get_session() as session:
                await session.execute(stmt)

        await with_timeout(run(), self.timeout, "credentials.record_success")
