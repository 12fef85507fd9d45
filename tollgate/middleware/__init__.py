# middleware/__init__.py
"""
Interceptor chain.

Interceptors run in the order they are added; the first one added is the
outermost. The standard chain is request context, address-keyed rate limits,
authentication, then identity-keyed rate limits.
"""
import logging
from typing import Any, Dict, List

from fastapi import FastAPI

from tollgate.ratelimit import KeySource

from .auth import AuthMiddleware, bearer_token
from .base import TollgateMiddleware
from .context import RequestContextMiddleware
from .rate_limit import RateLimitMiddleware

logger = logging.getLogger("tollgate.middleware")


class InterceptorChain:
    """Ordered interceptor registration for Tollgate apps."""

    def __init__(self):
        self.interceptors: List[Dict[str, Any]] = []

    def add(self, middleware_class: type, **options) -> 'InterceptorChain':
        self.interceptors.append({'class': middleware_class, 'options': options})
        return self

    @classmethod
    def standard(cls, services) -> 'InterceptorChain':
        return (
            cls()
            .add(RequestContextMiddleware, services=services)
            .add(RateLimitMiddleware, services=services, source=KeySource.CLIENT_IP)
            .add(AuthMiddleware, services=services)
            .add(RateLimitMiddleware, services=services, source=KeySource.IDENTITY)
        )

    def apply_to_app(self, app: FastAPI) -> None:
        """Add the interceptors to ``app``, preserving their order."""
        # Starlette wraps in LIFO order
        for interceptor in reversed(self.interceptors):
            app.add_middleware(interceptor['class'], **interceptor['options'])
            logger.debug(f"Added interceptor: {interceptor['class'].__name__}")


__all__ = [
    'AuthMiddleware',
    'InterceptorChain',
    'RateLimitMiddleware',
    'RequestContextMiddleware',
    'TollgateMiddleware',
    'bearer_token',
]
