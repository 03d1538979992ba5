from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from lifecraft.db import ProfileRow
from lifecraft.dependencies import get_current_user, get_first_aid_service
from lifecraft.first_aid import FirstAidService
from lifecraft.schemas import TutorialStats

router = APIRouter()


@router.get("/tutorials")
def list_tutorials(
    search: Optional[str] = Query(default=None, max_length=200),
    category: Optional[str] = None,
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.list_tutorials(search=search, category=category)


@router.get("/categories")
def list_categories(first_aid: FirstAidService = Depends(get_first_aid_service)):
    return first_aid.list_categories()


@router.get("/tutorials/{tutorial_id}")
def get_tutorial(
    tutorial_id: str,
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.get_tutorial(tutorial_id)


@router.post("/tutorials/{tutorial_id}/complete")
def mark_tutorial_complete(
    tutorial_id: str,
    user: ProfileRow = Depends(get_current_user),
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.mark_tutorial_complete(user.id, tutorial_id)


@router.get("/progress")
def get_tutorial_progress(
    user: ProfileRow = Depends(get_current_user),
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.get_tutorial_progress(user.id)


@router.get("/stats", response_model=TutorialStats)
def get_tutorial_stats(
    user: ProfileRow = Depends(get_current_user),
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.get_tutorial_stats(user.id)


@router.get("/recommended")
def get_recommended_tutorials(
    user: ProfileRow = Depends(get_current_user),
    first_aid: FirstAidService = Depends(get_first_aid_service),
):
    return first_aid.get_recommended_tutorials(user.id)
