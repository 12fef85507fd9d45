"""Credential lifecycle: tokens, sessions, blacklist, login history and the gateway."""
from .blacklist import RevocationReason, TokenBlacklist
from .credentials import CredentialStore, FailureResult
from .gateway import AuthGateway, LoginResult
from .history import LoginHistoryRecorder, LoginOutcome
from .sessions import SessionStore
from .tokens import Identity, TokenPair, TokenService, TokenType

__all__ = [
    "AuthGateway",
    "CredentialStore",
    "FailureResult",
    "Identity",
    "LoginHistoryRecorder",
    "LoginOutcome",
    "LoginResult",
    "RevocationReason",
    "SessionStore",
    "TokenBlacklist",
    "TokenPair",
    "TokenService",
    "TokenType",
]
