"""
First-aid tutorials and per-user completion tracking.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, or_, select

from lifecraft.db import Database, ProfileRow, TutorialProgressRow, TutorialRow, utcnow
from lifecraft.errors import NotFoundError
from lifecraft.gamification import round_half_up
from lifecraft.storage import StorageClient, certificate_key

logger = logging.getLogger(__name__)

ESSENTIAL = "Essential"
RECOMMENDED_LIMIT = 6

TUTORIAL_FIELDS = (
    "title",
    "description",
    "category",
    "difficulty",
    "duration",
    "steps",
    "type",
    "content",
    "video_url",
)


class FirstAidService:
    def __init__(self, db: Database, storage: Optional[StorageClient] = None):
        self.db = db
        self.storage = storage

    def list_tutorials(
        self, search: Optional[str] = None, category: Optional[str] = None
    ) -> list[dict]:
        query = select(TutorialRow).order_by(TutorialRow.created_at.desc())
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(TutorialRow.title.ilike(pattern), TutorialRow.description.ilike(pattern))
            )
        if category:
            query = query.where(TutorialRow.category == category)
        with self.db.Session() as session:
            return [row.as_dict() for row in session.execute(query).scalars()]

    def get_tutorial(self, tutorial_id: str) -> dict:
        with self.db.Session() as session:
            row = session.get(TutorialRow, tutorial_id)
        if row is None:
            raise NotFoundError("Tutorial not found")
        return row.as_dict()

    def list_categories(self) -> list[str]:
        with self.db.Session() as session:
            categories = session.execute(
                select(TutorialRow.category)
                .where(TutorialRow.category.is_not(None))
                .order_by(TutorialRow.created_at.desc())
            ).scalars()
            return [c for c in dict.fromkeys(categories) if c]

    def mark_tutorial_complete(self, user_id: str, tutorial_id: str) -> dict:
        with self.db.Session() as session:
            if session.get(TutorialRow, tutorial_id) is None:
                raise NotFoundError("Tutorial not found")
            progress = session.execute(
                select(TutorialProgressRow).where(
                    TutorialProgressRow.user_id == user_id,
                    TutorialProgressRow.tutorial_id == tutorial_id,
                )
            ).scalar_one_or_none()
            if progress is None:
                progress = TutorialProgressRow(user_id=user_id, tutorial_id=tutorial_id)
                session.add(progress)
            progress.completed = True
            progress.completion_date = utcnow()
            session.commit()
            return progress.as_dict()

    def get_tutorial_progress(self, user_id: str) -> list[dict]:
        with self.db.Session() as session:
            rows = session.execute(
                select(TutorialProgressRow).where(TutorialProgressRow.user_id == user_id)
            ).scalars()
            return [row.as_dict() for row in rows]

    def _completed_ids(self, user_id: str) -> set[str]:
        return {p["tutorial_id"] for p in self.get_tutorial_progress(user_id) if p["completed"]}

    def get_tutorial_stats(self, user_id: str) -> dict:
        total = len(self.list_tutorials())
        completed = len(self._completed_ids(user_id))
        return {
            "total": total,
            "completed": completed,
            "inProgress": total - completed,
            "completionRate": round_half_up(completed / total * 100) if total else 0,
        }

    def get_recommended_tutorials(self, user_id: str) -> list[dict]:
        """Unfinished tutorials, essential ones first, newest first otherwise."""
        completed = self._completed_ids(user_id)
        remaining = [t for t in self.list_tutorials() if t["id"] not in completed]
        remaining.sort(key=lambda t: t["difficulty"] != ESSENTIAL)
        return remaining[:RECOMMENDED_LIMIT]

    # -- admin ---------------------------------------------------------

    def create_tutorial(self, data: dict) -> dict:
        row = TutorialRow()
        for key in TUTORIAL_FIELDS:
            if key in data:
                setattr(row, key, data[key])
        with self.db.Session() as session:
            session.add(row)
            session.commit()
        return row.as_dict()

    def update_tutorial(self, tutorial_id: str, data: dict) -> dict:
        with self.db.Session() as session:
            row = session.get(TutorialRow, tutorial_id)
            if row is None:
                raise NotFoundError("Tutorial not found")
            for key in TUTORIAL_FIELDS:
                if key in data:
                    setattr(row, key, data[key])
            row.updated_at = utcnow()
            session.commit()
            return row.as_dict()

    def delete_tutorial(self, tutorial_id: str) -> None:
        with self.db.Session() as session:
            if session.get(TutorialRow, tutorial_id) is None:
                raise NotFoundError("Tutorial not found")
            session.execute(
                delete(TutorialProgressRow).where(TutorialProgressRow.tutorial_id == tutorial_id)
            )
            session.execute(delete(TutorialRow).where(TutorialRow.id == tutorial_id))
            session.commit()

    def get_completed_users(self, tutorial_id: str) -> list[dict]:
        with self.db.Session() as session:
            rows = session.execute(
                select(TutorialProgressRow, ProfileRow)
                .join(ProfileRow, ProfileRow.id == TutorialProgressRow.user_id, isouter=True)
                .where(
                    TutorialProgressRow.tutorial_id == tutorial_id,
                    TutorialProgressRow.completed.is_(True),
                )
                .order_by(TutorialProgressRow.completion_date.desc())
            ).all()
        return [
            {
                "user_id": progress.user_id,
                "full_name": (profile.full_name if profile else None) or "Unknown User",
                "email": profile.email if profile else "No email",
                "completion_date": progress.completion_date,
                "certificate_path": progress.certificate_path,
            }
            for progress, profile in rows
        ]

    def upload_certificate(self, user_id: str, tutorial_id: str, data: bytes) -> str:
        if self.storage is None:
            raise RuntimeError("FirstAidService was created without storage")
        with self.db.Session() as session:
            progress = session.execute(
                select(TutorialProgressRow).where(
                    TutorialProgressRow.user_id == user_id,
                    TutorialProgressRow.tutorial_id == tutorial_id,
                )
            ).scalar_one_or_none()
            if progress is None or not progress.completed:
                raise NotFoundError("Tutorial has not been completed by this user")
            path = certificate_key("tutorials", user_id, tutorial_id)
            self.storage.upload_bytes(path, data)
            progress.certificate_path = path
            session.commit()
        return path
