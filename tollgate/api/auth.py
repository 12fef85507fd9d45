"""
Authentication routes: login, refresh, logout and the current user.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request

from tollgate.auth import AuthGateway, Identity, TokenPair
from tollgate.schemas.token import LoginRequest, LogoutRequest, RefreshRequest, TokenResponse
from tollgate.schemas.user import UserResponse

from .deps import get_bearer_token, get_client_ip, get_gateway, get_identity

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
        access_expires_at=pair.access_expires_at,
        refresh_expires_at=pair.refresh_expires_at,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    ip: str = Depends(get_client_ip),
    gateway: AuthGateway = Depends(get_gateway),
):
    result = await gateway.login(
        body.email, body.password, ip=ip, user_agent=request.headers.get("user-agent")
    )
    return _token_response(result.tokens)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, gateway: AuthGateway = Depends(get_gateway)):
    return _token_response(await gateway.refresh(body.refresh_token))


@router.post("/logout")
async def logout(
    body: LogoutRequest,
    access_token: Optional[str] = Depends(get_bearer_token),
    gateway: AuthGateway = Depends(get_gateway),
):
    await gateway.logout(body.refresh_token, access_token)
    return {"message": "Successfully logged out"}


@router.get("/me", response_model=UserResponse)
async def read_me(
    identity: Identity = Depends(get_identity),
    gateway: AuthGateway = Depends(get_gateway),
):
    return await gateway.current_credential(identity)
