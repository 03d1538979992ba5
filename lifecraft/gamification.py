"""
Points, ranks and the activity log.

These helpers take an open SQLAlchemy session so callers can fold them into
the same transaction as the change that earned the points.
"""

from __future__ import annotations

import logging
import math

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lifecraft.db import ActivityRow, Database, ProfileRow, utcnow

logger = logging.getLogger(__name__)

# (minimum points, rank name), ascending.
RANK_THRESHOLDS: list[tuple[int, str]] = [
    (0, "Beginner"),
    (500, "Responder"),
    (1000, "Emergency Responder"),
    (2000, "Disaster Specialist"),
    (5000, "Master Coordinator"),
]

ACTION_EARNED_BADGE = "Earned Badge"
ACTION_STARTED_MODULE = "Started Module"
ACTION_COMPLETED_MODULE = "Completed Module"
ACTION_COMPLETED_DRILL = "Completed drill"
ACTION_COMPLETED_PHYSICAL_DRILL = "Completed physical drill"
ACTION_REGISTERED_DRILL = "Registered for drill"
ACTION_REGISTERED_SESSION = "Registered for community session"
ACTION_COMPLETED_SESSION = "Completed community session"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for the non-negative scores and points used here."""
    return int(math.floor(value + 0.5))


def rank_for_points(points: int) -> str:
    rank = RANK_THRESHOLDS[0][1]
    for threshold, name in RANK_THRESHOLDS:
        if points >= threshold:
            rank = name
    return rank


def get_rank_info(points: int) -> dict:
    """Current rank, the next one and the points needed to reach it."""
    for level, (threshold, name) in enumerate(RANK_THRESHOLDS[1:], start=1):
        if points < threshold:
            return {
                "current": RANK_THRESHOLDS[level - 1][1],
                "next": name,
                "nextPoints": threshold,
                "level": level,
            }
    top_threshold, top_name = RANK_THRESHOLDS[-1]
    return {
        "current": top_name,
        "next": "Max Level",
        "nextPoints": top_threshold,
        "level": len(RANK_THRESHOLDS),
    }


def award_points(session: Session, user_id: str, points: int) -> int:
    """
    Atomically add ``points`` to a profile and refresh its rank.

    Returns the new point total. Does not commit.
    """
    session.execute(
        update(ProfileRow)
        .where(ProfileRow.id == user_id)
        .values(points=ProfileRow.points + points, updated_at=utcnow())
    )
    total = session.execute(
        select(ProfileRow.points).where(ProfileRow.id == user_id)
    ).scalar_one()
    session.execute(
        update(ProfileRow)
        .where(ProfileRow.id == user_id)
        .values(rank=rank_for_points(total))
    )
    return total


def log_activity(
    session: Session, user_id: str, action: str, item: str | None, points: int = 0
) -> None:
    """Append an activity-log entry. Does not commit."""
    session.add(ActivityRow(user_id=user_id, action=action, item=item, points=points))


def record_activity(
    db: Database, user_id: str, action: str, item: str | None, points: int = 0
) -> None:
    """
    Log an activity in its own transaction.

    For entries that are informational only: a failed write is logged and
    the caller carries on.
    """
    try:
        with db.Session() as session:
            log_activity(session, user_id, action, item, points)
            session.commit()
    except SQLAlchemyError:
        logger.warning("Activity log failed for %s (%s)", user_id, action, exc_info=True)
