"""
Personalised module recommendations, generated by Gemini and cached per user.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy import select

from lifecraft.badges import BadgeService
from lifecraft.cache import Cache
from lifecraft.config import Settings, get_settings
from lifecraft.db import Database, ModuleRow, ProfileRow, UserModuleRow
from lifecraft.errors import NotFoundError
from lifecraft.gamification import round_half_up
from lifecraft.schemas import Recommendation
from models import gemini
from models.prompts import make_recommendation_prompt

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3
ALL_COMPLETED_MESSAGE = "All modules completed! Great job!"

# Score per difficulty, keyed by the lowest average score of each tier.
DIFFICULTY_SCORES: list[tuple[int, dict[str, int]]] = [
    (80, {"Advanced": 3, "Intermediate": 2, "Beginner": 1}),
    (60, {"Intermediate": 3, "Beginner": 2, "Advanced": 1}),
    (0, {"Beginner": 3, "Intermediate": 2, "Advanced": 1}),
]

DEFAULT_CATEGORY = "General"
DEFAULT_DIFFICULTY = "Beginner"

RECOMMENDATION_DEFAULTS = {
    "moduleId": "",
    "title": "Recommended Module",
    "reason": "Great next step in your training",
    "difficulty": "Beginner",
    "points": 0,
}


def recommendations_key(user_id: str) -> str:
    return f"ai_reco_{user_id}"


def recommendations_meta_key(user_id: str) -> str:
    return f"ai_reco_{user_id}_meta"


def parse_recommendations(text: str) -> list[dict]:
    """
    Parse the model's reply into at most three recommendation dicts.

    Raises ValueError when the reply is not a JSON list or an entry has
    values of the wrong type.
    """
    cleaned = text.replace("```json", "").replace("```", "").strip()
    parsed = json.loads(cleaned)
    if not isinstance(parsed, list):
        raise ValueError("Expected a JSON list of recommendations")
    recommendations = []
    for entry in parsed[:MAX_RECOMMENDATIONS]:
        if not isinstance(entry, dict):
            entry = {}
        filled = {key: entry.get(key) or default for key, default in RECOMMENDATION_DEFAULTS.items()}
        try:
            recommendations.append(Recommendation.model_validate(filled).model_dump())
        except ValidationError as exc:
            raise ValueError(f"Invalid recommendation entry: {exc}") from exc
    return recommendations


def fallback_recommendations(average_score: float, available_modules: list[dict]) -> list[dict]:
    """Rank modules by how well their difficulty suits the user's average score."""
    scores = next(table for floor, table in DIFFICULTY_SCORES if average_score >= floor)
    ranked = sorted(
        available_modules,
        key=lambda m: scores.get(m.get("difficulty"), 1),
        reverse=True,
    )
    return [
        {
            "moduleId": m["id"],
            "title": m["title"],
            "reason": f"Great next step in your {(m.get('category') or DEFAULT_CATEGORY).lower()} training journey",
            "difficulty": m.get("difficulty") or DEFAULT_DIFFICULTY,
            "points": m.get("points") or 0,
        }
        for m in ranked[:MAX_RECOMMENDATIONS]
    ]


class RecommendationService:
    def __init__(
        self,
        db: Database,
        cache: Cache,
        badges: BadgeService,
        generate: Optional[Callable[[str], str]] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.cache = cache
        self.badges = badges
        self.settings = settings or get_settings()
        self.generate = generate or self._call_gemini

    def _call_gemini(self, prompt: str) -> str:
        return gemini.call_predict(
            prompt,
            model=self.settings.gemini_model,
            api_key=self.settings.gemini_api_key,
        )

    def _read_cache(self, user_id: str) -> Optional[list]:
        try:
            return self.cache.get_json(recommendations_key(user_id))
        except Exception:
            logger.exception("Recommendation cache read failed for %s", user_id)
            return None

    def _write_cache(self, user_id: str, recommendations: list, generation_ms: int) -> None:
        ttl = self.settings.recommendation_ttl_seconds
        meta = {
            "cachedAt": datetime.now(timezone.utc).isoformat(),
            "generationTime": generation_ms,
            "userId": user_id,
        }
        try:
            self.cache.set_json(recommendations_key(user_id), recommendations, ttl_seconds=ttl)
            self.cache.set_json(recommendations_meta_key(user_id), meta, ttl_seconds=ttl)
        except Exception:
            logger.exception("Recommendation cache write failed for %s", user_id)

    def build_user_stats(self, user_id: str) -> tuple[dict, list[dict]]:
        """Return the stats snapshot and the modules still open to the user."""
        with self.db.Session() as session:
            profile = session.get(ProfileRow, user_id)
            if profile is None:
                raise NotFoundError("Profile not found")
            modules = session.execute(
                select(ModuleRow).order_by(ModuleRow.created_at.asc())
            ).scalars().all()
            completed_rows = session.execute(
                select(UserModuleRow).where(
                    UserModuleRow.user_id == user_id, UserModuleRow.completed.is_(True)
                )
            ).scalars().all()

        modules_by_id = {m.id: m for m in modules}
        completed_ids = {row.module_id for row in completed_rows}
        completed_details = []
        for row in completed_rows:
            module = modules_by_id.get(row.module_id)
            if module is None:
                continue
            completed_details.append(
                {
                    "title": module.title,
                    "category": module.category or DEFAULT_CATEGORY,
                    "difficulty": module.difficulty or DEFAULT_DIFFICULTY,
                    "score": row.score or 0,
                }
            )
        scores = [row.score for row in completed_rows if row.score and row.score > 0]
        stats = {
            "totalPoints": profile.points,
            "rank": profile.rank,
            "completedModules": len(completed_rows),
            "totalModules": len(modules),
            "averageScore": round_half_up(sum(scores) / len(scores)) if scores else 0,
            "badges": self.badges.get_user_badges(user_id)["badges"],
            "completedModuleDetails": completed_details,
        }
        available = [
            {
                "id": m.id,
                "title": m.title,
                "category": m.category or DEFAULT_CATEGORY,
                "difficulty": m.difficulty or DEFAULT_DIFFICULTY,
                "points": m.points or 0,
                "duration": m.duration,
                "description": m.description,
            }
            for m in modules
            if not m.locked and m.id not in completed_ids
        ]
        return stats, available

    def get_recommendations(self, user_id: str) -> dict:
        start = time.time()
        cached = self._read_cache(user_id)
        if cached is not None:
            logger.info("Recommendation cache hit for %s", user_id)
            return {
                "fromCache": True,
                "recommendations": cached,
                "responseTime": int((time.time() - start) * 1000),
                "source": "cache",
            }

        logger.info("Recommendation cache miss for %s", user_id)
        stats, available = self.build_user_stats(user_id)
        if not available:
            return {
                "fromCache": False,
                "recommendations": [],
                "responseTime": int((time.time() - start) * 1000),
                "source": "none",
                "message": ALL_COMPLETED_MESSAGE,
            }

        generation_start = time.time()
        source = "gemini"
        try:
            text = self.generate(make_recommendation_prompt(stats, available))
            recommendations = parse_recommendations(text)
        except Exception:
            logger.exception("Recommendation generation failed for %s, using fallback", user_id)
            recommendations = fallback_recommendations(stats["averageScore"], available)
            source = "fallback"
        generation_ms = int((time.time() - generation_start) * 1000)
        logger.info("Generated %d recommendations in %dms", len(recommendations), generation_ms)

        self._write_cache(user_id, recommendations, generation_ms)
        return {
            "fromCache": False,
            "recommendations": recommendations,
            "responseTime": int((time.time() - start) * 1000),
            "source": source,
        }
