"""
Password hashing and token fingerprinting.
"""
import asyncio
import hashlib

from passlib.context import CryptContext


def fingerprint(token: str) -> str:
    """SHA-256 hex digest of a raw token. Raw tokens are never persisted."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class PasswordHasher:
    """bcrypt via passlib, with a precomputed hash for unknown accounts."""

    def __init__(self, rounds: int = 12) -> None:
        self.context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)
        self._dummy_hash = self.context.hash("tollgate-dummy-password")

    def hash(self, password: str) -> str:
        return self.context.hash(password)

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        try:
            return self.context.verify(plain_password, hashed_password)
        except ValueError:
            # Malformed stored hash
            return False

    async def verify_async(self, plain_password: str, hashed_password: str) -> bool:
        """Verify off the event loop; bcrypt is deliberately slow."""
        return await asyncio.to_thread(self.verify, plain_password, hashed_password)

    async def dummy_verify(self, plain_password: str) -> None:
        """Spend the same time as a real check so unknown emails are not observable."""
        await self.verify_async(plain_password, self._dummy_hash)
