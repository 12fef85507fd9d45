"""Bearer token verification for protected paths."""
from typing import Optional

from fastapi.security.utils import get_authorization_scheme_param
from starlette.requests import Request

from tollgate.errors import Unauthorized

from .base import TollgateMiddleware

DEFAULT_PROTECTED_PREFIXES = ("/auth/me", "/users/", "/ai/")


def bearer_token(request: Request) -> Optional[str]:
    scheme, token = get_authorization_scheme_param(request.headers.get("Authorization"))
    if scheme.lower() != "bearer" or not token:
        return None
    return token


class AuthMiddleware(TollgateMiddleware):
    """
    Pre: on protected paths, verifies the access token and sets
    ``request.state.identity``; rejects with 401 otherwise. Session activity
    is stamped in the background. Post: nothing.
    """

    def setup(self):
        self.protected_prefixes = tuple(self.config.get("protected_prefixes", DEFAULT_PROTECTED_PREFIXES))

    def is_protected(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.protected_prefixes)

    async def before_request(self, request: Request):
        if not self.is_protected(request.url.path):
            return None
        token = bearer_token(request)
        if token is None:
            raise Unauthorized()
        identity = await self.services.tokens.verify_access(token)
        request.state.identity = identity
        self.services.gateway.touch(identity)
        return None
