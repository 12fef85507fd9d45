"""
Access/refresh token issuance, verification and rotation.

Tokens are HS256 JWTs carrying ``user_id``, ``sid`` (the session id), ``type``,
``iat``, ``exp`` and a random ``jti``. Verification order is fixed: signature,
type discriminator, blacklist, expiry. A blacklisted token is reported as
revoked even after it has expired.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from jose import JWTError, jwt

from tollgate.core.security import fingerprint
from tollgate.db.exceptions import StorageError
from tollgate.db.utils import DetachedWriter, retry_on_db_error
from tollgate.errors import TokenExpired, TokenInvalid, TokenRevoked
from tollgate.utils.datetime import from_timestamp, to_timestamp, utcnow

from .blacklist import RevocationReason, TokenBlacklist

logger = logging.getLogger(__name__)


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    token_type: str = "bearer"
    expires_in: int = 0


@dataclass(frozen=True)
class Identity:
    """The verified subject of a token."""
    user_id: int
    session_id: str
    token_type: TokenType
    fingerprint: str
    expires_at: datetime


class TokenService:
    def __init__(
        self,
        secret: str,
        blacklist: TokenBlacklist,
        *,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
        writer: Optional[DetachedWriter] = None,
    ) -> None:
        self.secret = secret
        self.blacklist = blacklist
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.clock = clock
        self.writer = writer or DetachedWriter()

    def _encode(self, user_id: int, session_id: str, token_type: TokenType, issued: int, ttl: timedelta) -> Tuple[str, int]:
        exp = issued + int(ttl.total_seconds())
        claims = {
            "user_id": user_id,
            "sid": session_id,
            "type": token_type.value,
            "iat": issued,
            "exp": exp,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm), exp

    def issue(self, user_id: int, session_id: str, now: Optional[datetime] = None) -> TokenPair:
        issued = int(to_timestamp(now or self.clock()))
        access, access_exp = self._encode(user_id, session_id, TokenType.ACCESS, issued, self.access_ttl)
        refresh, refresh_exp = self._encode(user_id, session_id, TokenType.REFRESH, issued, self.refresh_ttl)
        return TokenPair(
            access_token=access,
            refresh_token=refresh,
            access_expires_at=from_timestamp(access_exp),
            refresh_expires_at=from_timestamp(refresh_exp),
            expires_in=access_exp - issued,
        )

    def inspect(self, token: str, token_type: Optional[TokenType] = None) -> Identity:
        """Check signature and type only. Expired and revoked tokens pass."""
        try:
            claims: Dict[str, Any] = jwt.decode(
                token, self.secret, algorithms=[self.algorithm], options={"verify_exp": False}
            )
        except JWTError:
            raise TokenInvalid()

        try:
            kind = TokenType(claims.get("type"))
        except ValueError:
            raise TokenInvalid()
        if token_type is not None and kind is not token_type:
            raise TokenInvalid()

        user_id, session_id, exp = claims.get("user_id"), claims.get("sid"), claims.get("exp")
        if not isinstance(user_id, int) or not isinstance(session_id, str) or not isinstance(exp, int):
            raise TokenInvalid()

        return Identity(
            user_id=user_id,
            session_id=session_id,
            token_type=kind,
            fingerprint=fingerprint(token),
            expires_at=from_timestamp(exp),
        )

    async def verify(self, token: str, token_type: TokenType) -> Identity:
        identity = self.inspect(token, token_type)
        try:
            revoked = await self.blacklist.contains(identity.fingerprint)
        except StorageError as e:
            # Revocation status unknown: fail closed.
            logger.warning(f"Blacklist lookup failed, rejecting token: {e}")
            raise TokenInvalid()
        if revoked:
            raise TokenRevoked()
        if identity.expires_at <= self.clock():
            raise TokenExpired()
        return identity

    async def verify_access(self, token: str) -> Identity:
        return await self.verify(token, TokenType.ACCESS)

    async def verify_refresh(self, token: str) -> Identity:
        return await self.verify(token, TokenType.REFRESH)

    async def _add(self, identity: Identity, reason: RevocationReason) -> bool:
        return await self.writer.shielded(
            self.blacklist.add(identity.fingerprint, identity.user_id, identity.expires_at, reason),
            name=f"blacklist.{reason.value}",
        )

    @retry_on_db_error(max_retries=3, delay=0.05)
    async def _blacklist(self, identity: Identity, reason: RevocationReason) -> bool:
        return await self._add(identity, reason)

    async def _blacklist_rotation(self, identity: Identity) -> Tuple[bool, bool]:
        """Blacklist a refresh token being rotated. Returns ``(inserted, retried)``.

        After a failed attempt an entry already present may be this rotation's
        own write that committed after its timeout fired.
        """
        attempts = 0

        @retry_on_db_error(max_retries=3, delay=0.05)
        async def attempt() -> bool:
            nonlocal attempts
            attempts += 1
            return await self._add(identity, RevocationReason.ROTATION)

        return await attempt(), attempts > 1

    async def _spent_by_rotation(self, identity: Identity) -> bool:
        try:
            entry = await self.blacklist.get(identity.fingerprint)
        except StorageError:
            return True
        return entry is None or entry.reason == RevocationReason.ROTATION.value

    async def rotate(self, refresh_token: str) -> Tuple[TokenPair, Identity]:
        """Exchange a refresh token for a new pair, exactly once.

        The presented token is blacklisted before anything is issued. Of
        several concurrent rotations of the same token only the one whose
        insert lands gets a new pair; the rest see ``TokenRevoked``.
        """
        identity = await self.verify(refresh_token, TokenType.REFRESH)
        try:
            inserted, retried = await self._blacklist_rotation(identity)
        except StorageError as e:
            logger.error(f"Could not blacklist refresh token for user {identity.user_id}, aborting rotation: {e}")
            raise TokenInvalid("Token could not be rotated, please try again")
        if not inserted and retried and await self._spent_by_rotation(identity):
            logger.error(
                f"Rotation outcome unknown for user {identity.user_id} session {identity.session_id} "
                f"after a storage retry, not issuing tokens"
            )
            raise TokenInvalid("Token could not be rotated, please try again")
        if not inserted:
            logger.warning(
                f"Refresh token replay detected for user {identity.user_id} session {identity.session_id}"
            )
            raise TokenRevoked()
        return self.issue(identity.user_id, identity.session_id), identity

    async def revoke(
        self,
        token: str,
        reason: RevocationReason = RevocationReason.LOGOUT,
        token_type: Optional[TokenType] = None,
    ) -> Identity:
        """Blacklist ``token``. Revoking twice is a no-op."""
        identity = self.inspect(token, token_type)
        await self.revoke_identity(identity, reason)
        return identity

    async def revoke_identity(self, identity: Identity, reason: RevocationReason) -> bool:
        return await self._blacklist(identity, reason)

    async def revoke_fingerprint(
        self,
        token_fingerprint: str,
        user_id: Optional[int],
        expires_at: datetime,
        reason: RevocationReason = RevocationReason.ADMIN_REVOKE,
    ) -> bool:
        """Blacklist a token known only by fingerprint, e.g. a session's refresh token."""
        return await self.writer.shielded(
            self.blacklist.add(token_fingerprint, user_id, expires_at, reason),
            name=f"blacklist.{reason.value}",
        )
