"""
Badge rules and the evaluator run by the badge worker.

The evaluator reads a user's completed modules once, derives an
``UserAchievementStats`` snapshot and walks ``BADGE_RULES`` in declaration
order. Each newly satisfied rule is awarded in its own transaction: the
award row, the bonus points and the activity-log entry commit together.
``badge_awards`` has a unique ``(user_id, badge_name)`` constraint, so two
evaluations racing for the same user cannot award a badge twice.

Results are published to the cache in full on every run:

* ``new_badges_{user}``  -- the badges earned by this run, for toasts.
* ``user_badges_{user}`` -- every badge name the user holds, for the dashboard.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from lifecraft.cache import Cache
from lifecraft.config import Settings, get_settings
from lifecraft.db import BadgeAwardRow, Database, ModuleRow, ProfileRow, UserModuleRow
from lifecraft.errors import NotFoundError
from lifecraft.gamification import ACTION_EARNED_BADGE, award_points, log_activity
from lifecraft.queue import JobQueue

logger = logging.getLogger(__name__)

BADGE_BONUS_POINTS = 50
UNKNOWN_CATEGORY = "Unknown"


def new_badges_key(user_id: str) -> str:
    return f"new_badges_{user_id}"


def user_badges_key(user_id: str) -> str:
    return f"user_badges_{user_id}"


def badge_processing_key(user_id: str) -> str:
    return f"badge_processing_{user_id}"


@dataclass(frozen=True)
class UserAchievementStats:
    completed_module_count: int
    average_score: float
    has_perfect_score: bool
    has_completed_full_category: bool


@dataclass(frozen=True)
class BadgeRule:
    name: str
    description: str
    icon: str
    predicate: Callable[[UserAchievementStats], bool]

    def as_dict(self) -> dict:
        return {"name": self.name, "description": self.description, "icon": self.icon}


BADGE_RULES: list[BadgeRule] = [
    BadgeRule(
        name="First Steps",
        description="Complete your first module",
        icon="🎯",
        predicate=lambda s: s.completed_module_count >= 1,
    ),
    BadgeRule(
        name="Quick Learner",
        description="Complete 3 modules",
        icon="⚡",
        predicate=lambda s: s.completed_module_count >= 3,
    ),
    BadgeRule(
        name="Perfect Score",
        description="Get 100% on any module",
        icon="💯",
        predicate=lambda s: s.has_perfect_score,
    ),
    BadgeRule(
        name="Knowledge Seeker",
        description="Complete 5 modules",
        icon="📚",
        predicate=lambda s: s.completed_module_count >= 5,
    ),
    BadgeRule(
        name="High Achiever",
        description="Maintain 80%+ average across all modules",
        icon="🌟",
        predicate=lambda s: s.average_score >= 80,
    ),
    BadgeRule(
        name="Category Master",
        description="Complete all modules in one category",
        icon="👑",
        predicate=lambda s: s.has_completed_full_category,
    ),
]


def derive_stats(
    completed: Iterable[tuple[Optional[int], Optional[str]]],
    category_totals: dict[str, int],
) -> UserAchievementStats:
    """
    Build the stats snapshot from ``(score, category)`` pairs of completed modules.

    Only positive scores count towards the average. A category is complete
    when the user's completed count matches the category's module total.
    """
    completed = list(completed)
    scores = [score for score, _ in completed if score and score > 0]
    average_score = sum(scores) / len(scores) if scores else 0.0
    category_counts = Counter(category or UNKNOWN_CATEGORY for _, category in completed)
    has_completed_full_category = any(
        count == category_totals.get(category) for category, count in category_counts.items()
    )
    return UserAchievementStats(
        completed_module_count=len(completed),
        average_score=average_score,
        has_perfect_score=any(score == 100 for score in scores),
        has_completed_full_category=has_completed_full_category,
    )


def select_new_badges(
    stats: UserAchievementStats,
    earned: set[str],
    rules: Iterable[BadgeRule] = BADGE_RULES,
) -> list[BadgeRule]:
    """Rules not yet earned whose predicate holds, in declaration order."""
    return [rule for rule in rules if rule.name not in earned and rule.predicate(stats)]


class BadgeService:
    def __init__(
        self,
        db: Database,
        cache: Cache,
        queue: Optional[JobQueue] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.cache = cache
        self.queue = queue
        self.settings = settings or get_settings()

    def enqueue_badge_job(self, user_id: str, module_id: Optional[str] = None) -> None:
        """Queue a badge evaluation and flag the user as being processed."""
        if self.queue is None:
            raise RuntimeError("BadgeService was created without a queue")
        self.queue.enqueue(
            {"userId": user_id, "moduleId": module_id, "timestamp": int(time.time() * 1000)}
        )
        self.cache.set_json(
            badge_processing_key(user_id),
            True,
            ttl_seconds=self.settings.badge_processing_ttl_seconds,
        )
        logger.info("Queued badge check for user %s", user_id)

    def is_processing(self, user_id: str) -> bool:
        return bool(self.cache.get_json(badge_processing_key(user_id)))

    def earned_badge_names(self, user_id: str) -> list[str]:
        """Badge names in the order they were awarded."""
        with self.db.Session() as session:
            rows = session.execute(
                select(BadgeAwardRow.badge_name)
                .where(BadgeAwardRow.user_id == user_id)
                .order_by(BadgeAwardRow.created_at.asc())
            ).scalars()
            return list(dict.fromkeys(rows))

    def compute_user_stats(self, user_id: str) -> UserAchievementStats:
        with self.db.Session() as session:
            completed = session.execute(
                select(UserModuleRow.score, ModuleRow.category)
                .join(ModuleRow, ModuleRow.id == UserModuleRow.module_id, isouter=True)
                .where(UserModuleRow.user_id == user_id, UserModuleRow.completed.is_(True))
            ).all()
            totals = session.execute(
                select(ModuleRow.category, func.count(ModuleRow.id)).group_by(
                    ModuleRow.category
                )
            ).all()
        category_totals: Counter = Counter()
        for category, count in totals:
            category_totals[category or UNKNOWN_CATEGORY] += count
        return derive_stats(
            ((score, category) for score, category in completed), dict(category_totals)
        )

    def _award(self, user_id: str, rule: BadgeRule) -> bool:
        try:
            with self.db.Session() as session:
                session.add(BadgeAwardRow(user_id=user_id, badge_name=rule.name))
                session.flush()
                award_points(session, user_id, BADGE_BONUS_POINTS)
                log_activity(
                    session, user_id, ACTION_EARNED_BADGE, rule.name, BADGE_BONUS_POINTS
                )
                session.commit()
        except IntegrityError:
            logger.info(
                "Badge %s already awarded to %s by a concurrent run", rule.name, user_id
            )
            return False
        return True

    def evaluate_badges(
        self, user_id: str, module_id: Optional[str] = None
    ) -> list[BadgeRule]:
        """
        Award every badge the user now qualifies for and refresh the badge cache.

        Returns the badges newly awarded by this call.
        """
        logger.info("Processing badges for user %s", user_id)
        if module_id:
            logger.info("Triggered by module completion: %s", module_id)

        with self.db.Session() as session:
            if session.get(ProfileRow, user_id) is None:
                raise NotFoundError(f"User {user_id} not found")

        earned_names = self.earned_badge_names(user_id)
        stats = self.compute_user_stats(user_id)

        new_badges: list[BadgeRule] = []
        for rule in select_new_badges(stats, set(earned_names)):
            if self._award(user_id, rule):
                new_badges.append(rule)
                logger.info("Awarded badge %s to %s", rule.name, user_id)

        all_badges = list(dict.fromkeys(earned_names + [b.name for b in new_badges]))
        if new_badges:
            self.cache.set_json(
                new_badges_key(user_id),
                [b.as_dict() for b in new_badges],
                ttl_seconds=self.settings.new_badges_ttl_seconds,
            )
            logger.info("Cached %d new badge(s) for %s", len(new_badges), user_id)
        else:
            logger.info("No new badges earned by %s", user_id)
        self.cache.set_json(
            user_badges_key(user_id),
            all_badges,
            ttl_seconds=self.settings.all_badges_ttl_seconds,
        )
        self.cache.delete(badge_processing_key(user_id))
        return new_badges

    def get_user_badges(self, user_id: str) -> dict:
        """Cache-aside read of the user's badge names, newest first on a miss."""
        cached = self.cache.get_json(user_badges_key(user_id))
        if cached:
            logger.info("Badge cache hit for %s: %d badges", user_id, len(cached))
            return {"badges": cached, "source": "cache"}

        logger.info("Badge cache miss for %s, reading database", user_id)
        with self.db.Session() as session:
            rows = session.execute(
                select(BadgeAwardRow.badge_name)
                .where(BadgeAwardRow.user_id == user_id)
                .order_by(BadgeAwardRow.created_at.desc())
            ).scalars()
            badges = list(dict.fromkeys(rows))
        if badges:
            self.cache.set_json(
                user_badges_key(user_id),
                badges,
                ttl_seconds=self.settings.badge_lookup_ttl_seconds,
            )
        return {"badges": badges, "source": "database"}

    def pop_new_badges(self, user_id: str) -> list[dict]:
        """Return and clear the badges awaiting a notification."""
        badges = self.cache.get_json(new_badges_key(user_id)) or []
        if badges:
            self.cache.delete(new_badges_key(user_id))
        return badges
