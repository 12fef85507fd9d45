"""
Rate limit tiers and the static route class bindings.

A route class names the kind of endpoint a path belongs to. Each class is bound
once, at import time, to the tiers that guard it and to the identity each tier
is keyed by. Path to class resolution is an ordered prefix table that is
memoized per path.
"""
from enum import Enum
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Sequence, Tuple


class Tier(str, Enum):
    IP = "ip"
    USER = "user"
    AUTH = "auth"
    API = "api"
    AI = "ai"


class RouteClass(str, Enum):
    PUBLIC = "public"
    LOGIN = "login"
    AUTH = "auth"
    API = "api"
    AI = "ai"
    EXEMPT = "exempt"


class KeySource(str, Enum):
    """Where the bucket key for a tier comes from."""

    CLIENT_IP = "client_ip"
    IDENTITY = "identity"


Binding = Tuple[Tier, KeySource]

# Login is throttled inside AuthGateway.login so that the ip and auth tiers
# are charged exactly once per attempt.
ROUTE_CLASS_BINDINGS: Dict[RouteClass, Tuple[Binding, ...]] = {
    RouteClass.PUBLIC: ((Tier.IP, KeySource.CLIENT_IP),),
    RouteClass.LOGIN: (),
    RouteClass.AUTH: (
        (Tier.IP, KeySource.CLIENT_IP),
        (Tier.AUTH, KeySource.CLIENT_IP),
    ),
    RouteClass.API: (
        (Tier.IP, KeySource.CLIENT_IP),
        (Tier.USER, KeySource.IDENTITY),
        (Tier.API, KeySource.IDENTITY),
    ),
    RouteClass.AI: (
        (Tier.IP, KeySource.CLIENT_IP),
        (Tier.USER, KeySource.IDENTITY),
        (Tier.AI, KeySource.IDENTITY),
    ),
    RouteClass.EXEMPT: (),
}

DEFAULT_ROUTES: Sequence[Tuple[str, RouteClass]] = (
    ("/health", RouteClass.EXEMPT),
    ("/docs", RouteClass.EXEMPT),
    ("/redoc", RouteClass.EXEMPT),
    ("/openapi.json", RouteClass.EXEMPT),
    ("/auth/login", RouteClass.LOGIN),
    # Refresh is called automatically by clients, so it takes the api budget.
    ("/auth/refresh", RouteClass.API),
    ("/auth/register", RouteClass.AUTH),
    ("/auth/password-reset", RouteClass.AUTH),
    ("/auth/logout", RouteClass.API),
    ("/auth/me", RouteClass.API),
    ("/users/", RouteClass.API),
    ("/ai/", RouteClass.AI),
)


class RouteTable:
    """Ordered prefix rules; the first matching prefix wins."""

    def __init__(
        self,
        routes: Iterable[Tuple[str, RouteClass]] = DEFAULT_ROUTES,
        default: RouteClass = RouteClass.PUBLIC,
        cache_size: int = 4096,
    ) -> None:
        self.routes: List[Tuple[str, RouteClass]] = list(routes)
        self.default = default
        self.resolve = lru_cache(maxsize=cache_size)(self._resolve)

    def _resolve(self, path: str) -> RouteClass:
        for prefix, route_class in self.routes:
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return route_class
        return self.default

    def bindings(self, path: str, source: Optional[KeySource] = None) -> Tuple[Binding, ...]:
        """Tiers guarding ``path``, optionally only those keyed by ``source``."""
        bound = ROUTE_CLASS_BINDINGS[self.resolve(path)]
        if source is None:
            return bound
        return tuple(b for b in bound if b[1] is source)
