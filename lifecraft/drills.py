"""
Virtual drills (scored, self-paced) and physical drills (registration, admin approval).
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, select

from lifecraft.db import (
    Database,
    DrillContentRow,
    DrillRow,
    ProfileRow,
    UserDrillRow,
    UserModuleRow,
    utcnow,
)
from lifecraft.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from lifecraft.gamification import (
    ACTION_COMPLETED_DRILL,
    ACTION_COMPLETED_PHYSICAL_DRILL,
    ACTION_REGISTERED_DRILL,
    award_points,
    log_activity,
    record_activity,
    round_half_up,
)
from lifecraft.mailer import Mailer, send_completion_notification
from lifecraft.storage import StorageClient, certificate_key

logger = logging.getLogger(__name__)

VIRTUAL = "Virtual"
PHYSICAL = "Physical"

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_DECLINED = "declined"

REGISTRATION_CONFLICTS = {
    STATUS_PENDING: "You have already registered for this drill and your registration is pending approval.",
    STATUS_APPROVED: "You have already been approved for this drill.",
    STATUS_COMPLETED: "You have already completed this drill.",
    STATUS_DECLINED: "Your previous registration for this drill was declined. Please contact an administrator.",
}

def _require_virtual(drill: Optional[DrillRow]) -> DrillRow:
    if drill is None:
        raise NotFoundError("Drill not found.")
    if drill.type != VIRTUAL:
        raise InvalidRequestError("This drill is not a virtual drill.")
    return drill


DRILL_FIELDS = (
    "title",
    "description",
    "type",
    "difficulty",
    "duration",
    "participants",
    "points",
    "location",
    "date",
    "time",
    "capacity",
    "instructor",
)


def _content_rows(drill_id: str, pages: list[dict]) -> list[DrillContentRow]:
    return [
        DrillContentRow(
            drill_id=drill_id,
            step_number=index + 1,
            step_title=page.get("title") or f"Step {index + 1}",
            step_description=page.get("content"),
            step_type=page.get("type") or "info",
            content={
                "question": page.get("question"),
                "options": page.get("options"),
                "correctAnswer": page.get("correctAnswer")
                if isinstance(page.get("correctAnswer"), int)
                else None,
                "explanation": page.get("explanation"),
            },
            points=page.get("points") if isinstance(page.get("points"), int) else 0,
        )
        for index, page in enumerate(pages)
    ]


class DrillService:
    def __init__(self, db: Database, storage: Optional[StorageClient] = None):
        self.db = db
        self.storage = storage

    def has_completed_module(self, user_id: str) -> bool:
        with self.db.Session() as session:
            found = session.execute(
                select(UserModuleRow.id)
                .where(UserModuleRow.user_id == user_id, UserModuleRow.completed.is_(True))
                .limit(1)
            ).first()
        return found is not None

    def _require_completed_module(self, user_id: str, action: str = "accessing") -> None:
        if not self.has_completed_module(user_id):
            raise PermissionDeniedError(
                f"You must complete at least one module before {action} drills."
            )

    def list_drills(self, user_id: str) -> list[dict]:
        with self.db.Session() as session:
            drills = session.execute(
                select(DrillRow).order_by(DrillRow.created_at.desc())
            ).scalars().all()
            user_drills = session.execute(
                select(UserDrillRow)
                .where(UserDrillRow.user_id == user_id)
                .order_by(UserDrillRow.created_at.asc())
            ).scalars().all()

        results = []
        for drill in drills:
            records = [ud for ud in user_drills if ud.drill_id == drill.id]
            completed = [ud for ud in records if ud.status == STATUS_COMPLETED]
            if completed:
                best = max(completed, key=lambda ud: ud.score or 0)
            else:
                best = records[0] if records else None
            item = drill.as_dict()
            item["user_drill"] = (
                {
                    "id": best.id,
                    "status": best.status,
                    "score": best.score,
                    "completion_seconds": best.completion_seconds,
                }
                if best
                else None
            )
            results.append(item)
        return results

    def get_drill(self, drill_id: str) -> dict:
        with self.db.Session() as session:
            drill = session.get(DrillRow, drill_id)
        if drill is None:
            raise NotFoundError("Drill not found.")
        return drill.as_dict()

    def get_drill_content(self, drill_id: str) -> list[dict]:
        with self.db.Session() as session:
            rows = session.execute(
                select(DrillContentRow)
                .where(DrillContentRow.drill_id == drill_id)
                .order_by(DrillContentRow.step_number.asc())
            ).scalars().all()
        return [row.as_dict() for row in rows]

    def start_virtual_drill(self, user_id: str, drill_id: str) -> dict:
        self._require_completed_module(user_id)
        with self.db.Session() as session:
            _require_virtual(session.get(DrillRow, drill_id))
            user_drill = session.execute(
                select(UserDrillRow).where(
                    UserDrillRow.user_id == user_id, UserDrillRow.drill_id == drill_id
                )
            ).scalar_one_or_none()
            if user_drill is None:
                user_drill = UserDrillRow(user_id=user_id, drill_id=drill_id)
                session.add(user_drill)
            user_drill.status = STATUS_IN_PROGRESS
            user_drill.started_at = utcnow()
            session.commit()
            return user_drill.as_dict()

    def complete_virtual_drill(
        self,
        user_id: str,
        drill_id: str,
        score: int,
        completion_seconds: float,
        is_retry: bool = False,
    ) -> dict:
        """
        Close an in-progress attempt, keeping the best score and fastest time.

        Points are only paid for a first run that improves on the stored score;
        retries never earn points.
        """
        self._require_completed_module(user_id)
        with self.db.Session() as session:
            drill = _require_virtual(session.get(DrillRow, drill_id))
            user_drill = session.execute(
                select(UserDrillRow).where(
                    UserDrillRow.user_id == user_id,
                    UserDrillRow.drill_id == drill_id,
                    UserDrillRow.status == STATUS_IN_PROGRESS,
                )
            ).scalar_one_or_none()
            if user_drill is None:
                raise NotFoundError("No in-progress drill found")

            previous_score = user_drill.score or 0
            improved = score > previous_score
            user_drill.score = score if improved else previous_score
            if user_drill.completion_seconds is None or completion_seconds < user_drill.completion_seconds:
                user_drill.completion_seconds = completion_seconds
            user_drill.status = STATUS_COMPLETED
            user_drill.completed_at = utcnow()

            points_earned = 0
            if not is_retry and improved:
                points_earned = round_half_up((drill.points or 0) * score / 100)
                award_points(session, user_id, points_earned)
                log_activity(session, user_id, ACTION_COMPLETED_DRILL, drill.title, points_earned)
            session.commit()

        logger.info(
            "User %s completed drill %s: score=%d retry=%s points=%d",
            user_id,
            drill_id,
            score,
            is_retry,
            points_earned,
        )
        return {
            "score": user_drill.score,
            "completion_seconds": user_drill.completion_seconds,
            "pointsEarned": points_earned,
            "improved": improved,
        }

    def register_for_physical_drill(self, user_id: str, drill_id: str) -> dict:
        self._require_completed_module(user_id, "registering for")
        with self.db.Session() as session:
            existing = session.execute(
                select(UserDrillRow).where(
                    UserDrillRow.user_id == user_id, UserDrillRow.drill_id == drill_id
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise ConflictError(
                    REGISTRATION_CONFLICTS.get(
                        existing.status, "You have already registered for this drill."
                    )
                )
            drill = session.get(DrillRow, drill_id)
            if drill is None:
                raise NotFoundError("Drill not found.")
            if drill.type != PHYSICAL:
                raise InvalidRequestError("This registration is only for physical drills.")
            registration = UserDrillRow(user_id=user_id, drill_id=drill_id, status=STATUS_PENDING)
            session.add(registration)
            session.commit()
        record_activity(self.db, user_id, ACTION_REGISTERED_DRILL, drill.title)
        return registration.as_dict()

    def get_drill_stats(self, user_id: str) -> dict:
        with self.db.Session() as session:
            user_drills = session.execute(
                select(UserDrillRow).where(UserDrillRow.user_id == user_id)
            ).scalars().all()
        best_scores: dict[str, int] = {}
        for ud in user_drills:
            if ud.status != STATUS_COMPLETED:
                continue
            best_scores[ud.drill_id] = max(best_scores.get(ud.drill_id, 0), ud.score or 0)
        scores = list(best_scores.values())
        return {
            "drillsCompleted": len(best_scores),
            "averageScore": round_half_up(sum(scores) / len(scores)) if scores else 0,
            "scheduled": sum(
                1 for ud in user_drills if ud.status in (STATUS_PENDING, STATUS_APPROVED)
            ),
        }

    def get_performance_history(self, user_id: str) -> list[dict]:
        with self.db.Session() as session:
            rows = session.execute(
                select(UserDrillRow, DrillRow.title)
                .join(DrillRow, DrillRow.id == UserDrillRow.drill_id)
                .where(UserDrillRow.user_id == user_id, UserDrillRow.status == STATUS_COMPLETED)
                .order_by(UserDrillRow.completed_at.desc())
            ).all()
        return [{**ud.as_dict(), "drill_title": title} for ud, title in rows]

    # -- admin ---------------------------------------------------------

    def create_drill(self, data: dict, pages: Optional[list[dict]] = None) -> dict:
        drill = DrillRow()
        for key in DRILL_FIELDS:
            if key in data:
                setattr(drill, key, data[key])
        with self.db.Session() as session:
            session.add(drill)
            session.flush()
            if pages and drill.type == VIRTUAL:
                session.add_all(_content_rows(drill.id, pages))
            session.commit()
        logger.info("Created %s drill %s", drill.type, drill.id)
        return drill.as_dict()

    def update_drill(self, drill_id: str, data: dict, pages: Optional[list[dict]] = None) -> dict:
        with self.db.Session() as session:
            drill = session.get(DrillRow, drill_id)
            if drill is None:
                raise NotFoundError("Drill not found.")
            for key in DRILL_FIELDS:
                if key in data:
                    setattr(drill, key, data[key])
            if pages is not None and drill.type == VIRTUAL:
                session.execute(delete(DrillContentRow).where(DrillContentRow.drill_id == drill_id))
                session.add_all(_content_rows(drill_id, pages))
            session.commit()
            return drill.as_dict()

    def delete_drill(self, drill_id: str) -> None:
        with self.db.Session() as session:
            if session.get(DrillRow, drill_id) is None:
                raise NotFoundError("Drill not found.")
            session.execute(delete(UserDrillRow).where(UserDrillRow.drill_id == drill_id))
            session.execute(delete(DrillContentRow).where(DrillContentRow.drill_id == drill_id))
            session.execute(delete(DrillRow).where(DrillRow.id == drill_id))
            session.commit()
        logger.info("Deleted drill %s", drill_id)

    def list_registrations(self) -> list[dict]:
        """Physical-drill registrations with the registrant and drill details."""
        with self.db.Session() as session:
            rows = session.execute(
                select(UserDrillRow, ProfileRow, DrillRow)
                .join(DrillRow, DrillRow.id == UserDrillRow.drill_id)
                .join(ProfileRow, ProfileRow.id == UserDrillRow.user_id, isouter=True)
                .where(
                    DrillRow.type == PHYSICAL,
                    UserDrillRow.status.in_(
                        [STATUS_PENDING, STATUS_APPROVED, STATUS_DECLINED, STATUS_COMPLETED]
                    ),
                )
                .order_by(UserDrillRow.created_at.desc())
            ).all()
        return [
            {
                **registration.as_dict(),
                "full_name": profile.full_name if profile else None,
                "email": profile.email if profile else None,
                "drill": {
                    "title": drill.title,
                    "date": drill.date,
                    "time": drill.time,
                    "location": drill.location,
                },
            }
            for registration, profile, drill in rows
        ]

    def _get_registration(self, session, registration_id: str) -> UserDrillRow:
        registration = session.get(UserDrillRow, registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")
        return registration

    def update_registration_status(self, registration_id: str, status: str) -> dict:
        if status not in (STATUS_APPROVED, STATUS_DECLINED):
            raise InvalidRequestError("Status must be approved or declined")
        with self.db.Session() as session:
            registration = self._get_registration(session, registration_id)
            registration.status = status
            session.commit()
            return registration.as_dict()

    def mark_physical_complete(self, registration_id: str) -> dict:
        with self.db.Session() as session:
            registration = self._get_registration(session, registration_id)
            registration.status = STATUS_COMPLETED
            registration.completed_at = utcnow()
            session.commit()
            drill = session.get(DrillRow, registration.drill_id)
        record_activity(
            self.db, registration.user_id, ACTION_COMPLETED_PHYSICAL_DRILL, drill.title if drill else None
        )
        return registration.as_dict()

    def upload_certificate(self, registration_id: str, data: bytes) -> str:
        if self.storage is None:
            raise RuntimeError("DrillService was created without storage")
        with self.db.Session() as session:
            registration = self._get_registration(session, registration_id)
            path = certificate_key("drills", registration.user_id, registration.drill_id)
            self.storage.upload_bytes(path, data)
            registration.certificate_path = path
            session.commit()
        return path

    def send_completion_email(self, registration_id: str, mailer: Mailer) -> str:
        with self.db.Session() as session:
            registration = self._get_registration(session, registration_id)
            profile = session.get(ProfileRow, registration.user_id)
            drill = session.get(DrillRow, registration.drill_id)
        if profile is None or drill is None:
            raise NotFoundError("Registration is missing its user or drill")
        return send_completion_notification(
            mailer,
            email=profile.email,
            full_name=profile.full_name or profile.email,
            drill_title=drill.title,
            drill_date=drill.date,
            drill_location=drill.location,
        )
