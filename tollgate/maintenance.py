"""
Periodic storage hygiene: expired blacklist entries, expired sessions and
idle rate limit buckets.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from tollgate.auth.blacklist import TokenBlacklist
from tollgate.auth.sessions import SessionStore
from tollgate.db.exceptions import StorageError
from tollgate.ratelimit import RateLimiter
from tollgate.utils.datetime import to_timestamp, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepReport:
    blacklist_pruned: int
    sessions_deleted: int
    buckets_evicted: int


class MaintenanceSweeper:
    def __init__(
        self,
        blacklist: TokenBlacklist,
        sessions: SessionStore,
        limiter: RateLimiter,
        *,
        interval: float = 3600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.blacklist = blacklist
        self.sessions = sessions
        self.limiter = limiter
        self.interval = interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.clock()
        report = SweepReport(
            blacklist_pruned=await self.blacklist.prune(now),
            sessions_deleted=await self.sessions.delete_expired(now),
            buckets_evicted=await self.limiter.evict_idle(to_timestamp(now)),
        )
        logger.info(
            f"Maintenance sweep: {report.blacklist_pruned} blacklist entries, "
            f"{report.sessions_deleted} sessions, {report.buckets_evicted} buckets"
        )
        return report

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except StorageError as e:
                logger.error(f"Maintenance sweep failed: {e}")

    def start(self) -> None:
        if self.interval <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
