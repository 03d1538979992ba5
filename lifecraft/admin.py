"""
Aggregate statistics for the admin portal.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from sqlalchemy import distinct, func, or_, select

from lifecraft.db import (
    ActivityRow,
    Database,
    DrillRow,
    ModuleRow,
    ProfileRow,
    UserDrillRow,
    UserModuleRow,
    utcnow,
)
from lifecraft.gamification import round_half_up

ACTIVE_WINDOW = timedelta(days=7)
SEARCH_LIMIT = 20


def _mean(values: list[int]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0


class AdminService:
    def __init__(self, db: Database):
        self.db = db

    def get_dashboard_stats(self) -> dict:
        with self.db.Session() as session:
            count = lambda query: session.execute(query).scalar_one()  # noqa: E731
            participants = count(
                select(func.count(ProfileRow.id)).where(ProfileRow.role != "admin")
            )
            modules = count(select(func.count(ModuleRow.id)))
            drills = count(select(func.count(DrillRow.id)))
            attempts = count(select(func.count(UserModuleRow.id)))
            completed = count(
                select(func.count(UserModuleRow.id)).where(UserModuleRow.completed.is_(True))
            )
            active = count(
                select(func.count(distinct(ActivityRow.user_id))).where(
                    ActivityRow.created_at >= utcnow() - ACTIVE_WINDOW
                )
            )
            certified_drills = count(
                select(func.count(DrillRow.id)).where(
                    DrillRow.type == "Physical", DrillRow.date.is_not(None)
                )
            )
        return {
            "totalParticipants": participants,
            "totalModules": modules,
            "totalDrills": drills,
            "avgCompletionRate": round_half_up(completed / (attempts or 1) * 100),
            "activeUsers7d": active,
            "totalCertifications": completed,
            "totalCertifiedDrills": certified_drills,
        }

    def list_participants(self, query: Optional[str] = None) -> list[dict]:
        """Non-admin profiles with their progress, optionally filtered by name or email."""
        statement = (
            select(ProfileRow)
            .where(ProfileRow.role != "admin")
            .order_by(ProfileRow.created_at.desc())
        )
        if query:
            pattern = f"%{query}%"
            statement = statement.where(
                or_(ProfileRow.full_name.ilike(pattern), ProfileRow.email.ilike(pattern))
            ).limit(SEARCH_LIMIT)

        with self.db.Session() as session:
            profiles = session.execute(statement).scalars().all()
            total_modules = session.execute(select(func.count(ModuleRow.id))).scalar_one() or 1
            modules_done = dict(
                session.execute(
                    select(UserModuleRow.user_id, func.count(UserModuleRow.id))
                    .where(UserModuleRow.completed.is_(True))
                    .group_by(UserModuleRow.user_id)
                ).all()
            )
            drills_done = dict(
                session.execute(
                    select(UserDrillRow.user_id, func.count(distinct(UserDrillRow.drill_id)))
                    .where(UserDrillRow.status == "completed")
                    .group_by(UserDrillRow.user_id)
                ).all()
            )

        return [
            {
                "id": p.id,
                "full_name": p.full_name or "Unknown",
                "email": p.email,
                "role": p.role,
                "points": p.points,
                "rank": p.rank,
                "created_at": p.created_at,
                "modulesCompleted": modules_done.get(p.id, 0),
                "totalModules": total_modules,
                "drillsCompleted": drills_done.get(p.id, 0),
                "completionRate": round_half_up(modules_done.get(p.id, 0) / total_modules * 100),
            }
            for p in profiles
        ]

    def get_recent_activity(self, limit: int = 10) -> list[dict]:
        with self.db.Session() as session:
            rows = session.execute(
                select(ActivityRow, ProfileRow.full_name)
                .join(ProfileRow, ProfileRow.id == ActivityRow.user_id, isouter=True)
                .order_by(ActivityRow.created_at.desc())
                .limit(limit)
            ).all()
        return [
            {
                "id": activity.id,
                "action": activity.action,
                "user_name": full_name or "Unknown User",
                "created_at": activity.created_at,
                "details": activity.item,
            }
            for activity, full_name in rows
        ]

    def get_drill_statistics(self) -> list[dict]:
        with self.db.Session() as session:
            drills = session.execute(
                select(DrillRow).order_by(DrillRow.created_at.desc())
            ).scalars().all()
            records = session.execute(select(UserDrillRow)).scalars().all()

        results = []
        for drill in drills:
            mine = [r for r in records if r.drill_id == drill.id]
            avg_score = 0
            if drill.type == "Virtual":
                avg_score = _mean(
                    [r.score for r in mine if r.status == "completed" and r.score is not None]
                )
            results.append(
                {
                    "id": drill.id,
                    "title": drill.title,
                    "type": drill.type,
                    "date": drill.date,
                    "time": drill.time,
                    "location": drill.location,
                    "registered": sum(
                        1 for r in mine if r.status in ("pending", "approved", "completed")
                    ),
                    "capacity": drill.capacity,
                    "avgScore": avg_score,
                }
            )
        return results

    def get_performance_metrics(self) -> dict:
        with self.db.Session() as session:
            module_scores = session.execute(
                select(UserModuleRow.score).where(UserModuleRow.score.is_not(None))
            ).scalars().all()
            drill_scores = session.execute(
                select(UserDrillRow.score).where(
                    UserDrillRow.status == "completed", UserDrillRow.score.is_not(None)
                )
            ).scalars().all()
        return {"avgModuleScore": _mean(module_scores), "avgDrillScore": _mean(drill_scores)}

    def get_certified_drills(self) -> list[dict]:
        """Dated physical drills that at least one participant has completed."""
        with self.db.Session() as session:
            drills = session.execute(
                select(DrillRow)
                .where(DrillRow.type == "Physical", DrillRow.date.is_not(None))
                .order_by(DrillRow.date.desc())
            ).scalars().all()
            completions = session.execute(
                select(UserDrillRow, ProfileRow)
                .join(ProfileRow, ProfileRow.id == UserDrillRow.user_id, isouter=True)
                .where(
                    UserDrillRow.status == "completed", UserDrillRow.completed_at.is_not(None)
                )
            ).all()

        results = []
        for drill in drills:
            participants = [
                {
                    "id": record.id,
                    "user_id": record.user_id,
                    "drill_id": record.drill_id,
                    "full_name": (profile.full_name if profile else None) or "Unknown",
                    "email": profile.email if profile else "No email",
                    "completed_at": record.completed_at,
                    "certificate_path": record.certificate_path,
                }
                for record, profile in completions
                if record.drill_id == drill.id
            ]
            if not participants:
                continue
            results.append(
                {
                    "id": drill.id,
                    "title": drill.title,
                    "date": drill.date,
                    "time": drill.time or "Not specified",
                    "location": drill.location or "Not specified",
                    "instructor": drill.instructor or "LifeCraft Instructor",
                    "completedParticipants": participants,
                }
            )
        return results
