from __future__ import annotations

from fastapi import APIRouter, Depends

from lifecraft.community import CommunityService
from lifecraft.db import ProfileRow
from lifecraft.dependencies import get_community_service, get_current_user

router = APIRouter()


@router.get("/sessions")
def list_sessions(
    user: ProfileRow = Depends(get_current_user),
    community: CommunityService = Depends(get_community_service),
):
    return community.list_sessions(user.id)


@router.post("/sessions/{session_id}/register", status_code=201)
def register_for_session(
    session_id: str,
    user: ProfileRow = Depends(get_current_user),
    community: CommunityService = Depends(get_community_service),
):
    return community.register_for_session(user.id, session_id)
