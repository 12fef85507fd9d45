"""
Service container.

``build_services`` wires every component from one ``Settings`` instance; each
component receives its collaborators through its constructor. One container
per application, stored on ``app.state.services``.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from tollgate.auth import (
    AuthGateway,
    CredentialStore,
    LoginHistoryRecorder,
    SessionStore,
    TokenBlacklist,
    TokenService,
)
from tollgate.core.config import Settings
from tollgate.core.security import PasswordHasher
from tollgate.db.session import Database
from tollgate.db.utils import DetachedWriter
from tollgate.maintenance import MaintenanceSweeper
from tollgate.ratelimit import BucketStore, RateLimiter, RouteTable, build_bucket_store
from tollgate.utils.datetime import to_timestamp, utcnow
from tollgate.utils.network import Network, parse_trusted_proxies


@dataclass
class Services:
    settings: Settings
    database: Database
    writer: DetachedWriter
    bucket_store: BucketStore
    limiter: RateLimiter
    route_table: RouteTable
    trusted_proxies: List[Network]
    hasher: PasswordHasher
    blacklist: TokenBlacklist
    tokens: TokenService
    sessions: SessionStore
    history: LoginHistoryRecorder
    credentials: CredentialStore
    gateway: AuthGateway
    sweeper: MaintenanceSweeper
    clock: Callable[[], datetime]

    async def close(self) -> None:
        await self.sweeper.stop()
        await self.writer.drain()
        await self.bucket_store.close()
        await self.database.close()


def build_services(
    settings: Settings,
    *,
    database: Optional[Database] = None,
    bucket_store: Optional[BucketStore] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    timeout = settings.STORAGE_TIMEOUT_SECONDS
    database = database or Database(settings.DATABASE_URL, echo_sql=settings.ECHO_SQL)
    writer = DetachedWriter(timeout=timeout)
    bucket_store = bucket_store or build_bucket_store(
        settings.RATE_LIMIT_BACKEND, settings.REDIS_URL, socket_timeout=timeout
    )
    limiter = RateLimiter(
        settings.tier_policies(),
        bucket_store,
        timeout=timeout,
        enabled=settings.RATE_LIMIT_ENABLED,
        clock=lambda: to_timestamp(clock()),
    )
    hasher = PasswordHasher(rounds=settings.PASSWORD_HASH_ROUNDS)
    blacklist = TokenBlacklist(database, timeout=timeout, clock=clock)
    tokens = TokenService(
        settings.JWT_SECRET,
        blacklist,
        algorithm=settings.JWT_ALGORITHM,
        access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
        refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
        clock=clock,
        writer=writer,
    )
    sessions = SessionStore(database, timeout=timeout)
    history = LoginHistoryRecorder(database, writer, clock=clock)
    credentials = CredentialStore(
        database,
        lockout_threshold=settings.LOCKOUT_THRESHOLD,
        lockout_duration=timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES),
        timeout=timeout,
    )
    gateway = AuthGateway(
        credentials=credentials,
        tokens=tokens,
        sessions=sessions,
        history=history,
        limiter=limiter,
        hasher=hasher,
        writer=writer,
        require_email_verification=settings.REQUIRE_EMAIL_VERIFICATION,
        clock=clock,
    )
    sweeper = MaintenanceSweeper(
        blacklist, sessions, limiter, interval=settings.SWEEP_INTERVAL_SECONDS, clock=clock
    )
    return Services(
        settings=settings,
        database=database,
        writer=writer,
        bucket_store=bucket_store,
        limiter=limiter,
        route_table=RouteTable(),
        trusted_proxies=parse_trusted_proxies(settings.trusted_proxies),
        hasher=hasher,
        blacklist=blacklist,
        tokens=tokens,
        sessions=sessions,
        history=history,
        credentials=credentials,
        gateway=gateway,
        sweeper=sweeper,
        clock=clock,
    )
