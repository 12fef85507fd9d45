"""
FastAPI dependencies resolving services and the caller's identity.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tollgate.auth import AuthGateway, Identity
from tollgate.container import Services
from tollgate.errors import Unauthorized
from tollgate.utils.network import client_ip

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_gateway(services: Services = Depends(get_services)) -> AuthGateway:
    return services.gateway


def get_client_ip(request: Request, services: Services = Depends(get_services)) -> str:
    cached = getattr(request.state, "client_ip", None)
    return cached or client_ip(request, services.trusted_proxies)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    return credentials.credentials if credentials else None


async def get_identity(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
    services: Services = Depends(get_services),
) -> Identity:
    """The verified caller; reuses the identity the auth interceptor resolved."""
    identity = getattr(request.state, "identity", None)
    if identity is not None:
        return identity
    if token is None:
        raise Unauthorized()
    return await services.tokens.verify_access(token)
