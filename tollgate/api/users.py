"""
Routes for the caller's own sessions and login history.
"""
from typing import List

from fastapi import APIRouter, Depends, Query, Response, status

from tollgate.auth import AuthGateway, Identity
from tollgate.schemas.user import LoginHistoryEntry, LoginHistoryPage, RevokedSessions, SessionInfo

from .deps import get_gateway, get_identity

router = APIRouter(prefix="/users/me", tags=["users"])


@router.get("/sessions", response_model=List[SessionInfo])
async def list_sessions(
    identity: Identity = Depends(get_identity),
    gateway: AuthGateway = Depends(get_gateway),
):
    sessions = await gateway.list_sessions(identity)
    return [
        SessionInfo.model_validate(s).model_copy(update={"is_current": current})
        for s, current in sessions
    ]


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_session(
    session_id: str,
    identity: Identity = Depends(get_identity),
    gateway: AuthGateway = Depends(get_gateway),
):
    await gateway.revoke_session(identity, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/sessions", response_model=RevokedSessions)
async def revoke_other_sessions(
    identity: Identity = Depends(get_identity),
    gateway: AuthGateway = Depends(get_gateway),
):
    return RevokedSessions(revoked=await gateway.revoke_other_sessions(identity))


@router.get("/login-history", response_model=LoginHistoryPage)
async def login_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_identity),
    gateway: AuthGateway = Depends(get_gateway),
):
    items, total = await gateway.login_history(identity, limit, offset)
    return LoginHistoryPage(
        items=[LoginHistoryEntry.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )
