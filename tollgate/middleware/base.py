# middleware/base.py
"""Base middleware classes for Tollgate interceptors."""
from abc import ABC
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tollgate.db.exceptions import StorageError
from tollgate.errors import AuthError, ServiceUnavailable, error_response
from tollgate.utils.network import client_ip


class TollgateMiddleware(BaseHTTPMiddleware, ABC):
    """Base class for interceptors.

    ``before_request`` may return a response to short-circuit the chain.
    ``AuthError`` raised from either hook is rendered as its JSON error body.
    """

    def __init__(self, app, **kwargs):
        super().__init__(app)
        self.config = kwargs
        self.services = kwargs.get("services")
        self.setup()

    def setup(self) -> None:
        """Override this method for middleware-specific setup."""
        pass

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            early = await self.before_request(request)
            if early is not None:
                return early
            response = await call_next(request)
            return await self.after_response(request, response)
        except Exception as e:
            return await self.handle_exception(request, e)

    async def before_request(self, request: Request) -> Optional[Response]:
        """Called before the request is processed."""
        return None

    async def after_response(self, request: Request, response: Response) -> Response:
        """Called after the response is generated."""
        return response

    async def handle_exception(self, request: Request, exc: Exception) -> Response:
        if isinstance(exc, AuthError):
            return error_response(exc)
        if isinstance(exc, StorageError):
            return error_response(ServiceUnavailable())
        raise exc

    def client_ip(self, request: Request) -> str:
        cached = getattr(request.state, "client_ip", None)
        if cached is None:
            cached = request.state.client_ip = client_ip(request, self.services.trusted_proxies)
        return cached
