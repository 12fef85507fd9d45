# middleware/rate_limit.py
"""Tiered rate limiting interceptor."""
import logging

from starlette.requests import Request
from starlette.responses import Response

from tollgate.ratelimit import Decision, KeySource

from .base import TollgateMiddleware

logger = logging.getLogger(__name__)


class RateLimitMiddleware(TollgateMiddleware):
    """
    Charges the tiers bound to the request's route class.

    Runs twice in the standard chain: once before authentication for tiers
    keyed by client address, once after it for tiers keyed by identity.
    Pre: may short-circuit with ``429 RATE_LIMITED`` and ``Retry-After``.
    Post: adds ``X-RateLimit-Limit``/``X-RateLimit-Remaining`` for the
    tightest tier charged.
    """

    def setup(self):
        self.source = KeySource(self.config.get("source", KeySource.CLIENT_IP))
        self.limiter = self.services.limiter
        self.routes = self.services.route_table

    def _key(self, request: Request, source: KeySource) -> str:
        if source is KeySource.IDENTITY:
            identity = getattr(request.state, "identity", None)
            if identity is not None:
                return str(identity.user_id)
        return self.client_ip(request)

    async def before_request(self, request: Request):
        bindings = self.routes.bindings(request.url.path, self.source)
        if not bindings:
            return None
        decision = await self.limiter.enforce(
            [(tier, self._key(request, source)) for tier, source in bindings]
        )
        if decision.limit:
            previous: Decision = getattr(request.state, "rate_limit", None)
            if previous is None or decision.remaining < previous.remaining:
                request.state.rate_limit = decision
        return None

    async def after_response(self, request: Request, response: Response) -> Response:
        decision = getattr(request.state, "rate_limit", None)
        if decision is not None and "X-RateLimit-Limit" not in response.headers:
            response.headers["X-RateLimit-Limit"] = str(decision.limit)
            response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response
