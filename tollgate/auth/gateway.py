"""
Login, refresh and logout orchestration.

Login runs the state machine ``Anonymous -> Authenticating -> {Authenticated |
Rejected | Locked}``: rate limits first, then account state, then the password.
A locked account is rejected before its hash is touched.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from tollgate.core.security import PasswordHasher, fingerprint
from tollgate.db.models import Credential, LoginHistory, UserSession
from tollgate.db.utils import DetachedWriter
from tollgate.errors import (
    AccountInactive,
    AccountLocked,
    EmailNotVerified,
    InvalidCredentials,
    SessionNotFound,
    TokenInvalid,
    TokenRevoked,
    Unauthorized,
)
from tollgate.ratelimit import RateLimiter, Tier
from tollgate.utils.datetime import utcnow
from tollgate.utils.device import parse_device

from .blacklist import RevocationReason
from .credentials import CredentialStore
from .history import LoginHistoryRecorder, LoginOutcome
from .sessions import SessionStore
from .tokens import Identity, TokenPair, TokenService, TokenType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    tokens: TokenPair
    credential: Credential
    session: UserSession


class AuthGateway:
    def __init__(
        self,
        *,
        credentials: CredentialStore,
        tokens: TokenService,
        sessions: SessionStore,
        history: LoginHistoryRecorder,
        limiter: RateLimiter,
        hasher: PasswordHasher,
        writer: DetachedWriter,
        require_email_verification: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.credentials = credentials
        self.tokens = tokens
        self.sessions = sessions
        self.history = history
        self.limiter = limiter
        self.hasher = hasher
        self.writer = writer
        self.require_email_verification = require_email_verification
        self.clock = clock

    async def login(
        self, email: str, password: str, *, ip: str, user_agent: Optional[str] = None
    ) -> LoginResult:
        await self.limiter.enforce([(Tier.IP, ip), (Tier.AUTH, ip)])
        now = self.clock()

        credential = await self.credentials.get_by_email(email)
        if credential is None:
            await self.hasher.dummy_verify(password)
            await self.history.record(None, ip, user_agent, LoginOutcome.BAD_PASSWORD, now)
            raise InvalidCredentials()

        if credential.is_locked(now):
            await self.history.record(credential.id, ip, user_agent, LoginOutcome.ACCOUNT_LOCKED, now)
            raise AccountLocked(retry_after=(credential.locked_until - now).total_seconds())

        if not credential.is_active:
            await self.history.record(credential.id, ip, user_agent, LoginOutcome.ACCOUNT_INACTIVE, now)
            raise AccountInactive()

        if not await self.hasher.verify_async(password, credential.password_hash):
            await self.credentials.record_failure(credential.id, now)
            await self.history.record(credential.id, ip, user_agent, LoginOutcome.BAD_PASSWORD, now)
            raise InvalidCredentials()

        if self.require_email_verification and not credential.email_verified:
            await self.history.record(credential.id, ip, user_agent, LoginOutcome.EMAIL_NOT_VERIFIED, now)
            raise EmailNotVerified()

        await self.credentials.record_success(credential.id, now, ip)

        session_id = str(uuid.uuid4())
        pair = self.tokens.issue(credential.id, session_id, now)
        user_session = UserSession(
            id=session_id,
            user_id=credential.id,
            token_fingerprint=fingerprint(pair.refresh_token),
            user_agent=user_agent[:512] if user_agent else None,
            device_info=parse_device(user_agent),
            ip_address=ip,
            created_at=now,
            last_active_at=now,
            expires_at=pair.refresh_expires_at,
        )
        await self.writer.shielded(self.sessions.create(user_session), name="sessions.create")
        await self.history.record(credential.id, ip, user_agent, LoginOutcome.SUCCESS, now)
        logger.info(f"User {credential.id} logged in from {ip} (session {session_id})")
        return LoginResult(tokens=pair, credential=credential, session=user_session)

    async def refresh(self, refresh_token: str) -> TokenPair:
        pair, old = await self.tokens.rotate(refresh_token)
        rebound = await self.writer.shielded(
            self.sessions.rebind(
                old.fingerprint, fingerprint(pair.refresh_token), pair.refresh_expires_at, self.clock()
            ),
            name="sessions.rebind",
        )
        if not rebound:
            # The session was revoked while its refresh token was still valid.
            await self.tokens.revoke(pair.refresh_token, RevocationReason.ADMIN_REVOKE, TokenType.REFRESH)
            await self.tokens.revoke(pair.access_token, RevocationReason.ADMIN_REVOKE, TokenType.ACCESS)
            raise TokenRevoked()
        return pair

    async def logout(self, refresh_token: str, access_token: Optional[str] = None) -> None:
        """Blacklist the presented tokens and drop the session. Safe to repeat."""
        identity = await self.tokens.revoke(refresh_token, RevocationReason.LOGOUT, TokenType.REFRESH)
        if access_token:
            try:
                access = self.tokens.inspect(access_token, TokenType.ACCESS)
            except TokenInvalid:
                logger.info(f"Ignoring unverifiable access token on logout for user {identity.user_id}")
                access = None
            if access is not None and access.user_id == identity.user_id:
                await self.tokens.revoke_identity(access, RevocationReason.LOGOUT)
        await self.writer.shielded(
            self.sessions.revoke_by_fingerprint(identity.fingerprint), name="sessions.revoke"
        )
        logger.info(f"User {identity.user_id} logged out (session {identity.session_id})")

    async def _blacklist_session(self, user_session: UserSession, reason: RevocationReason) -> None:
        await self.tokens.revoke_fingerprint(
            user_session.token_fingerprint, user_session.user_id, user_session.expires_at, reason
        )

    async def revoke_session(self, identity: Identity, session_id: str) -> None:
        user_session = await self.sessions.get(session_id, identity.user_id)
        if user_session is None:
            raise SessionNotFound()
        await self._blacklist_session(user_session, RevocationReason.LOGOUT)
        if not await self.sessions.revoke_by_id(session_id, identity.user_id):
            raise SessionNotFound()

    async def revoke_other_sessions(self, identity: Identity) -> int:
        current = await self.sessions.get(identity.session_id, identity.user_id)
        keep = current.token_fingerprint if current else None
        revoked = await self.sessions.revoke_all_except(identity.user_id, keep)
        for user_session in revoked:
            await self._blacklist_session(user_session, RevocationReason.LOGOUT)
        if revoked:
            logger.info(f"User {identity.user_id} revoked {len(revoked)} other sessions")
        return len(revoked)

    async def list_sessions(self, identity: Identity) -> List[Tuple[UserSession, bool]]:
        sessions = await self.sessions.list_active(identity.user_id, self.clock())
        return [(s, s.id == identity.session_id) for s in sessions]

    async def login_history(
        self, identity: Identity, limit: int = 20, offset: int = 0
    ) -> Tuple[List[LoginHistory], int]:
        return await self.history.list_for_user(identity.user_id, limit, offset)

    async def current_credential(self, identity: Identity) -> Credential:
        credential = await self.credentials.get_by_id(identity.user_id)
        if credential is None or not credential.is_active:
            raise Unauthorized()
        return credential

    def touch(self, identity: Identity) -> None:
        """Stamp session activity in the background."""
        self.writer.submit(
            self.sessions.touch_session(identity.session_id, self.clock()), name="sessions.touch"
        )
