"""
HTTP routes for the LifeCraft API.
"""

from fastapi import APIRouter

from lifecraft.routes import admin, auth, community, drills, first_aid, learning, notifications

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(learning.router, tags=["learning"])
router.include_router(drills.router, prefix="/drills", tags=["drills"])
router.include_router(community.router, prefix="/community", tags=["community"])
router.include_router(first_aid.router, prefix="/first-aid", tags=["first-aid"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(admin.router, prefix="/admin", tags=["admin"])
