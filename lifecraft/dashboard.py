"""
Learner dashboard summary and certificate list.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from lifecraft.badges import BadgeService
from lifecraft.config import Settings
from lifecraft.db import (
    ActivityRow,
    CommunitySessionRow,
    Database,
    DrillRow,
    ModuleRow,
    ProfileRow,
    SessionRegistrationRow,
    UserDrillRow,
    UserModuleRow,
)
from lifecraft.errors import NotFoundError
from lifecraft.gamification import get_rank_info
from lifecraft.storage import StorageClient

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 3
NOT_SPECIFIED = "Not specified"


class DashboardService:
    def __init__(
        self,
        db: Database,
        badges: BadgeService,
        storage: StorageClient,
        settings: Settings,
    ):
        self.db = db
        self.badges = badges
        self.storage = storage
        self.settings = settings

    def get_dashboard(self, user_id: str) -> dict:
        with self.db.Session() as session:
            profile = session.get(ProfileRow, user_id)
            if profile is None:
                raise NotFoundError("Profile not found")
            completed = session.execute(
                select(func.count(UserModuleRow.id)).where(
                    UserModuleRow.user_id == user_id, UserModuleRow.completed.is_(True)
                )
            ).scalar_one()
            total = session.execute(select(func.count(ModuleRow.id))).scalar_one()
            activities = session.execute(
                select(ActivityRow)
                .where(ActivityRow.user_id == user_id)
                .order_by(ActivityRow.created_at.desc())
                .limit(RECENT_ACTIVITY_LIMIT)
            ).scalars().all()

        return {
            "completedModules": completed,
            "totalModules": total,
            "totalPoints": profile.points,
            "badges": self.badges.get_user_badges(user_id)["badges"],
            "badgesProcessing": self.badges.is_processing(user_id),
            "recentActivity": [
                {
                    "id": a.id,
                    "action": a.action,
                    "item": a.item,
                    "points": a.points,
                    "created_at": a.created_at,
                }
                for a in activities
            ],
            "rank": get_rank_info(profile.points),
        }

    def _sign(self, path):
        if not path:
            return None
        return self.storage.presign_get(path, expires_in=self.settings.certificate_url_expiry_seconds)

    def get_certificates(self, user_id: str) -> list[dict]:
        """Completed physical drills and certified sessions, most recent first."""
        with self.db.Session() as session:
            drills = session.execute(
                select(UserDrillRow, DrillRow)
                .join(DrillRow, DrillRow.id == UserDrillRow.drill_id)
                .where(
                    UserDrillRow.user_id == user_id,
                    UserDrillRow.status == "completed",
                    UserDrillRow.completed_at.is_not(None),
                    DrillRow.type == "Physical",
                    DrillRow.date.is_not(None),
                )
            ).all()
            sessions = session.execute(
                select(SessionRegistrationRow, CommunitySessionRow)
                .join(
                    CommunitySessionRow,
                    CommunitySessionRow.id == SessionRegistrationRow.session_id,
                )
                .where(
                    SessionRegistrationRow.user_id == user_id,
                    SessionRegistrationRow.status == "completed",
                    SessionRegistrationRow.completed_at.is_not(None),
                    CommunitySessionRow.certified.is_(True),
                )
            ).all()

        certificates = [
            {
                "id": record.id,
                "type": "drill",
                "item_id": drill.id,
                "title": drill.title,
                "date": drill.date,
                "time": drill.time or NOT_SPECIFIED,
                "location": drill.location or NOT_SPECIFIED,
                "instructor": drill.instructor or "LifeCraft Instructor",
                "organization": "LifeCraft",
                "certificate_url": self._sign(record.certificate_path),
                "completed_at": record.completed_at,
            }
            for record, drill in drills
        ]
        certificates += [
            {
                "id": record.id,
                "type": "session",
                "item_id": community_session.id,
                "title": community_session.title,
                "date": community_session.date,
                "time": community_session.time or NOT_SPECIFIED,
                "location": community_session.location or NOT_SPECIFIED,
                "instructor": community_session.instructor or "Community Instructor",
                "organization": community_session.organization or "LifeCraft Community",
                "certificate_url": self._sign(record.certificate_path),
                "completed_at": record.completed_at,
            }
            for record, community_session in sessions
        ]
        certificates.sort(key=lambda c: c["completed_at"], reverse=True)
        return certificates
