"""
Durable record of revoked and rotated token fingerprints.
"""
import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from tollgate.db.models import RevokedToken
from tollgate.db.session import Database
from tollgate.db.utils import with_timeout
from tollgate.utils.datetime import utcnow

logger = logging.getLogger(__name__)


class RevocationReason(str, Enum):
    LOGOUT = "logout"
    ROTATION = "rotation"
    ADMIN_REVOKE = "admin_revoke"


class TokenBlacklist:
    """Revoked token fingerprints.

    Entries never become valid again, so positive lookups are cached in
    process; negative lookups always go to storage.
    """

    def __init__(
        self,
        database: Database,
        *,
        timeout: Optional[float] = None,
        cache_size: int = 10000,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = database
        self.timeout = timeout
        self.cache_size = cache_size
        self.clock = clock
        self._cache: Dict[str, datetime] = {}
        self._cache_lock = threading.Lock()

    def _remember(self, fingerprint: str, expires_at: datetime) -> None:
        with self._cache_lock:
            if len(self._cache) >= self.cache_size:
                self._cache.pop(next(iter(self._cache)))
            self._cache[fingerprint] = expires_at

    async def add(
        self,
        fingerprint: str,
        user_id: Optional[int],
        expires_at: datetime,
        reason: RevocationReason = RevocationReason.LOGOUT,
    ) -> bool:
        """Insert-if-absent. Returns False when the fingerprint was already present."""
        return await with_timeout(
            self._insert(fingerprint, user_id, expires_at, reason), self.timeout, "blacklist.add"
        )

    async def _insert(self, fingerprint, user_id, expires_at, reason) -> bool:
        entry = RevokedToken(
            fingerprint=fingerprint,
            user_id=user_id,
            expires_at=expires_at,
            revoked_at=self.clock(),
            reason=RevocationReason(reason).value,
        )
        async with self.db.get_session() as session:
            session.add(entry)
            try:
                await session.flush()
            except IntegrityError:
                await session.rollback()
                self._remember(fingerprint, expires_at)
                return False
        self._remember(fingerprint, expires_at)
        return True

    async def contains(self, fingerprint: str) -> bool:
        if fingerprint in self._cache:
            return True
        return await with_timeout(self._lookup(fingerprint), self.timeout, "blacklist.contains")

    async def _lookup(self, fingerprint: str) -> bool:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(RevokedToken.expires_at).where(RevokedToken.fingerprint == fingerprint)
            )
            expires_at = result.scalar_one_or_none()
        if expires_at is None:
            return False
        self._remember(fingerprint, expires_at)
        return True

    async def get(self, fingerprint: str) -> Optional[RevokedToken]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(RevokedToken).where(RevokedToken.fingerprint == fingerprint)
            )
            return result.scalar_one_or_none()

    async def prune(self, before: datetime) -> int:
        """Delete entries whose token would have expired anyway."""
        async with self.db.get_session() as session:
            result = await session.execute(
                delete(RevokedToken).where(RevokedToken.expires_at < before)
            )
            removed = result.rowcount or 0
        with self._cache_lock:
            for fp in [fp for fp, exp in self._cache.items() if exp < before]:
                del self._cache[fp]
        if removed:
            logger.info(f"Pruned {removed} expired blacklist entries")
        return removed
