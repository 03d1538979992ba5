"""
Learner-facing routes: modules, quizzes, badges, recommendations and the dashboard.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Body, Depends

from lifecraft.badges import BadgeService
from lifecraft.dashboard import DashboardService
from lifecraft.db import ProfileRow
from lifecraft.dependencies import (
    get_badge_service,
    get_current_user,
    get_dashboard_service,
    get_module_service,
    get_recommendation_service,
)
from lifecraft.modules import ModuleService
from lifecraft.recommendations import RecommendationService
from lifecraft.schemas import (
    BadgesResponse,
    ModuleCompletion,
    NewBadgesResponse,
    QuizResult,
    QuizSubmission,
    RecommendationsResponse,
    StatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/modules")
def list_modules(
    user: ProfileRow = Depends(get_current_user),
    modules: ModuleService = Depends(get_module_service),
):
    return modules.list_modules(user.id)


@router.get("/modules/completed")
def list_completed_modules(
    user: ProfileRow = Depends(get_current_user),
    modules: ModuleService = Depends(get_module_service),
):
    return modules.get_completed_modules(user.id)


@router.get("/modules/{module_id}")
def get_module(
    module_id: str,
    user: ProfileRow = Depends(get_current_user),
    modules: ModuleService = Depends(get_module_service),
):
    return modules.get_module(module_id, include_answers=user.role == "admin")


@router.post("/modules/{module_id}/start", response_model=StatusResponse)
def start_module(
    module_id: str,
    user: ProfileRow = Depends(get_current_user),
    modules: ModuleService = Depends(get_module_service),
):
    modules.start_module(user.id, module_id)
    return StatusResponse()


@router.get("/modules/{module_id}/progress")
def get_module_progress(
    module_id: str,
    user: ProfileRow = Depends(get_current_user),
    modules: ModuleService = Depends(get_module_service),
):
    return modules.get_module_progress(user.id, module_id)


@router.post("/modules/{module_id}/complete", response_model=ModuleCompletion)
def complete_module(
    module_id: str,
    user: ProfileRow = Depends(get_current_user),
    modules: ModuleService = Depends(get_module_service),
):
    return modules.complete_module(user.id, module_id)


@router.post("/lessons/{lesson_id}/quiz", response_model=QuizResult)
def submit_lesson_quiz(
    lesson_id: str,
    payload: QuizSubmission,
    user: ProfileRow = Depends(get_current_user),
    modules: ModuleService = Depends(get_module_service),
):
    return modules.submit_lesson_quiz(user.id, lesson_id, payload.answers)


@router.get("/badges", response_model=BadgesResponse)
def get_badges(
    user: ProfileRow = Depends(get_current_user),
    badges: BadgeService = Depends(get_badge_service),
):
    return badges.get_user_badges(user.id)


@router.get("/badges/new", response_model=NewBadgesResponse)
def pop_new_badges(
    user: ProfileRow = Depends(get_current_user),
    badges: BadgeService = Depends(get_badge_service),
):
    return {"badges": badges.pop_new_badges(user.id)}


@router.get("/badges/status")
def badge_status(
    user: ProfileRow = Depends(get_current_user),
    badges: BadgeService = Depends(get_badge_service),
):
    return {"processing": badges.is_processing(user.id)}


@router.post("/badges/process", status_code=202)
def process_badges(
    module_id: Optional[str] = Body(default=None, embed=True, alias="moduleId"),
    user: ProfileRow = Depends(get_current_user),
    badges: BadgeService = Depends(get_badge_service),
):
    badges.enqueue_badge_job(user.id, module_id)
    return {
        "status": "processing",
        "message": "Checking for new badges...",
        "queuedAt": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/recommendations", response_model=RecommendationsResponse)
def get_recommendations(
    user: ProfileRow = Depends(get_current_user),
    recommendations: RecommendationService = Depends(get_recommendation_service),
):
    return recommendations.get_recommendations(user.id)


@router.get("/dashboard")
def get_dashboard(
    user: ProfileRow = Depends(get_current_user),
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    return dashboard.get_dashboard(user.id)


@router.get("/dashboard/certificates")
def get_certificates(
    user: ProfileRow = Depends(get_current_user),
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    return dashboard.get_certificates(user.id)
