from __future__ import annotations

from fastapi import APIRouter, Depends

from lifecraft.db import ProfileRow
from lifecraft.dependencies import get_current_user, get_drill_service
from lifecraft.drills import DrillService
from lifecraft.schemas import DrillCompletion, DrillCompletionResult

router = APIRouter()


@router.get("")
def list_drills(
    user: ProfileRow = Depends(get_current_user),
    drills: DrillService = Depends(get_drill_service),
):
    return drills.list_drills(user.id)


@router.get("/stats")
def get_drill_stats(
    user: ProfileRow = Depends(get_current_user),
    drills: DrillService = Depends(get_drill_service),
):
    return drills.get_drill_stats(user.id)


@router.get("/history")
def get_performance_history(
    user: ProfileRow = Depends(get_current_user),
    drills: DrillService = Depends(get_drill_service),
):
    return drills.get_performance_history(user.id)


@router.get("/{drill_id}")
def get_drill(
    drill_id: str,
    user: ProfileRow = Depends(get_current_user),
    drills: DrillService = Depends(get_drill_service),
):
    return drills.get_drill(drill_id)


@router.get("/{drill_id}/content")
def get_drill_content(
    drill_id: str,
    user: ProfileRow = Depends(get_current_user),
    drills: DrillService = Depends(get_drill_service),
):
    return drills.get_drill_content(drill_id)


@router.post("/{drill_id}/start")
def start_virtual_drill(
    drill_id: str,
    user: ProfileRow = Depends(get_current_user),
    drills: DrillService = Depends(get_drill_service),
):
    return drills.start_virtual_drill(user.id, drill_id)


@router.post("/{drill_id}/complete", response_model=DrillCompletionResult)
def complete_virtual_drill(
    drill_id: str,
    payload: DrillCompletion,
    user: ProfileRow = Depends(get_current_user),
    drills: DrillService = Depends(get_drill_service),
):
    return drills.complete_virtual_drill(
        user.id, drill_id, payload.score, payload.completion_seconds, payload.is_retry
    )


@router.post("/{drill_id}/register", status_code=201)
def register_for_physical_drill(
    drill_id: str,
    user: ProfileRow = Depends(get_current_user),
    drills: DrillService = Depends(get_drill_service),
):
    return drills.register_for_physical_drill(user.id, drill_id)
