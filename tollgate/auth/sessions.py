"""
Durable record of live sessions.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update

from tollgate.db.models import UserSession
from tollgate.db.session import Database
from tollgate.db.utils import with_timeout

logger = logging.getLogger(__name__)


class SessionStore:
    """Sessions keyed by id and by the fingerprint of their refresh token."""

    def __init__(self, database: Database, *, timeout: Optional[float] = None) -> None:
        self.db = database
        self.timeout = timeout

    async def create(self, user_session: UserSession) -> UserSession:
        if user_session.expires_at <= user_session.created_at:
            raise ValueError("Session must expire after it is created")

        async def run() -> UserSession:
            async with self.db.get_session() as session:
                session.add(user_session)
            return user_session

        return await with_timeout(run(), self.timeout, "sessions.create")

    async def get(self, session_id: str, user_id: Optional[int] = None) -> Optional[UserSession]:
        stmt = select(UserSession).where(UserSession.id == session_id)
        if user_id is not None:
            stmt = stmt.where(UserSession.user_id == user_id)
        async with self.db.get_session() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[UserSession]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(UserSession).where(UserSession.token_fingerprint == fingerprint)
            )
            return result.scalar_one_or_none()

    async def list_active(self, user_id: int, now: datetime) -> List[UserSession]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(UserSession)
                .where(UserSession.user_id == user_id, UserSession.expires_at > now)
                .order_by(UserSession.last_active_at.desc())
            )
            return list(result.scalars().all())

    async def revoke_by_id(self, session_id: str, user_id: int) -> bool:
        """Delete one session; False when it does not exist or belongs to someone else."""
        async def run() -> bool:
            async with self.db.get_session() as session:
                result = await session.execute(
                    delete(UserSession).where(
                        UserSession.id == session_id, UserSession.user_id == user_id
                    )
                )
                return bool(result.rowcount)

        return await with_timeout(run(), self.timeout, "sessions.revoke_by_id")

    async def revoke_by_fingerprint(self, fingerprint: str) -> bool:
        async def run() -> bool:
            async with self.db.get_session() as session:
                result = await session.execute(
                    delete(UserSession).where(UserSession.token_fingerprint == fingerprint)
                )
                return bool(result.rowcount)

        return await with_timeout(run(), self.timeout, "sessions.revoke_by_fingerprint")

    async def revoke_all_except(
        self, user_id: int, except_fingerprint: Optional[str] = None
    ) -> List[UserSession]:
        """Delete every session of ``user_id`` but the one bound to ``except_fingerprint``.

        Returns the deleted rows so their tokens can be blacklisted.
        """
        async def run() -> List[UserSession]:
            async with self.db.get_session() as session:
                stmt = select(UserSession).where(UserSession.user_id == user_id)
                if except_fingerprint:
                    stmt = stmt.where(UserSession.token_fingerprint != except_fingerprint)
                doomed = list((await session.execute(stmt)).scalars().all())
                if doomed:
                    await session.execute(
                        delete(UserSession).where(UserSession.id.in_([s.id for s in doomed]))
                    )
                return doomed

        return await with_timeout(run(), self.timeout, "sessions.revoke_all_except")

    async def rebind(
        self, old_fingerprint: str, new_fingerprint: str, expires_at: datetime, now: datetime
    ) -> bool:
        """Move a session onto a rotated refresh token. False when the session is gone."""
        async def run() -> bool:
            async with self.db.get_session() as session:
                result = await session.execute(
                    update(UserSession)
                    .where(UserSession.token_fingerprint == old_fingerprint)
                    .values(token_fingerprint=new_fingerprint, expires_at=expires_at, last_active_at=now)
                    .execution_options(synchronize_session=False)
                )
                return bool(result.rowcount)

        return await with_timeout(run(), self.timeout, "sessions.rebind")

    async def touch(self, fingerprint: str, now: datetime) -> None:
        """Best-effort activity stamp for the session bound to ``fingerprint``."""
        await self._touch(UserSession.token_fingerprint == fingerprint, now)

    async def touch_session(self, session_id: str, now: datetime) -> None:
        await self._touch(UserSession.id == session_id, now)

    async def _touch(self, criterion, now: datetime) -> None:
        async with self.db.get_session() as session:
            await session.execute(
                update(UserSession)
                .where(criterion, UserSession.last_active_at < now)
                .values(last_active_at=now)
                .execution_options(synchronize_session=False)
            )

    async def delete_expired(self, before: datetime) -> int:
        async with self.db.get_session() as session:
            result = await session.execute(
                delete(UserSession).where(UserSession.expires_at <= before)
            )
            removed = result.rowcount or 0
        if removed:
            logger.info(f"Deleted {removed} expired sessions")
        return removed
