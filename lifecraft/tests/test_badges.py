import unittest
from unittest.mock import patch

from sqlalchemy import func, select

from lifecraft.badges import (
    BADGE_BONUS_POINTS,
    BADGE_RULES,
    BadgeService,
    UserAchievementStats,
    badge_processing_key,
    derive_stats,
    new_badges_key,
    select_new_badges,
    user_badges_key,
)
from lifecraft.cache import InMemoryCache
from lifecraft.config import Settings
from lifecraft.db import ActivityRow, BadgeAwardRow, Database
from lifecraft.dependencies import IN_MEMORY_DATABASE_URL
from lifecraft.errors import NotFoundError
from lifecraft.queue import InMemoryJobQueue
from lifecraft.tests.factories import make_module, make_user, mark_completed, points_of


class DeriveStatsTests(unittest.TestCase):
    def test_average_ignores_zero_and_missing_scores(self):
        stats = derive_stats([(0, "Fire"), (None, "Fire"), (90, "Fire")], {"Fire": 5})
        self.assertEqual(stats.completed_module_count, 3)
        self.assertEqual(stats.average_score, 90)
        self.assertFalse(stats.has_perfect_score)
        self.assertFalse(stats.has_completed_full_category)

    def test_null_category_counts_as_unknown(self):
        stats = derive_stats([(100, None)], {"Unknown": 1, "Flood": 2})
        self.assertTrue(stats.has_perfect_score)
        self.assertTrue(stats.has_completed_full_category)

    def test_no_completions(self):
        stats = derive_stats([], {"Fire": 1})
        self.assertEqual(stats, UserAchievementStats(0, 0.0, False, False))


class SelectNewBadgesTests(unittest.TestCase):
    def test_skips_earned_badges_and_keeps_rule_order(self):
        stats = UserAchievementStats(
            completed_module_count=5,
            average_score=85,
            has_perfect_score=True,
            has_completed_full_category=False,
        )
        names = [rule.name for rule in select_new_badges(stats, {"Quick Learner"})]
        self.assertEqual(
            names, ["First Steps", "Perfect Score", "Knowledge Seeker", "High Achiever"]
        )

    def test_every_rule_has_distinct_name(self):
        names = [rule.name for rule in BADGE_RULES]
        self.assertEqual(len(names), len(set(names)))
        self.assertEqual(len(names), 6)


class BadgeServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = Database(IN_MEMORY_DATABASE_URL)
        self.cache = InMemoryCache()
        self.queue = InMemoryJobQueue()
        self.service = BadgeService(self.db, self.cache, self.queue, Settings())
        self.user_id = make_user(self.db)

    def _complete(self, *scores, category="Fire Safety"):
        for index, score in enumerate(scores):
            module_id = make_module(self.db, title=f"Module {index}", category=category)
            mark_completed(self.db, self.user_id, module_id, score)

    def test_evaluate_awards_badges_points_and_activity(self):
        self._complete(100, 90, 80)

        awarded = self.service.evaluate_badges(self.user_id)

        expected = [
            "First Steps",
            "Quick Learner",
            "Perfect Score",
            "High Achiever",
            "Category Master",
        ]
        self.assertEqual([rule.name for rule in awarded], expected)
        self.assertEqual(points_of(self.db, self.user_id), BADGE_BONUS_POINTS * len(expected))
        with self.db.Session() as session:
            logged = session.execute(
                select(func.count(ActivityRow.id)).where(ActivityRow.action == "Earned Badge")
            ).scalar_one()
        self.assertEqual(logged, len(expected))

        new_badges = self.cache.get_json(new_badges_key(self.user_id))
        self.assertEqual([b["name"] for b in new_badges], expected)
        self.assertEqual(new_badges[0]["icon"], "🎯")
        self.assertEqual(self.cache.get_json(user_badges_key(self.user_id)), expected)

    def test_second_run_awards_nothing_and_keeps_badge_list(self):
        self._complete(100)
        first = self.service.evaluate_badges(self.user_id)
        self.assertEqual(len(self.service.pop_new_badges(self.user_id)), len(first))

        self.assertEqual(self.service.evaluate_badges(self.user_id), [])
        self.assertEqual(self.service.pop_new_badges(self.user_id), [])
        self.assertEqual(
            self.cache.get_json(user_badges_key(self.user_id)), [b.name for b in first]
        )
        self.assertEqual(points_of(self.db, self.user_id), BADGE_BONUS_POINTS * len(first))

    def test_concurrent_award_is_skipped(self):
        self._complete(60)
        with self.db.Session() as session:
            session.add(BadgeAwardRow(user_id=self.user_id, badge_name="First Steps"))
            session.commit()

        # Simulate a run that read the earned list before the other run committed.
        with patch.object(self.service, "earned_badge_names", return_value=[]):
            awarded = self.service.evaluate_badges(self.user_id)

        self.assertNotIn("First Steps", [rule.name for rule in awarded])
        with self.db.Session() as session:
            copies = session.execute(
                select(func.count(BadgeAwardRow.id)).where(
                    BadgeAwardRow.user_id == self.user_id,
                    BadgeAwardRow.badge_name == "First Steps",
                )
            ).scalar_one()
        self.assertEqual(copies, 1)
        self.assertEqual(points_of(self.db, self.user_id), BADGE_BONUS_POINTS * len(awarded))

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            self.service.evaluate_badges("missing-user")

    def test_evaluate_clears_processing_marker(self):
        self.service.enqueue_badge_job(self.user_id, "module-1")
        self.assertTrue(self.service.is_processing(self.user_id))

        self.service.evaluate_badges(self.user_id, "module-1")

        self.assertFalse(self.service.is_processing(self.user_id))
        self.assertIsNone(self.cache.get_json(badge_processing_key(self.user_id)))

    def test_enqueue_payload(self):
        self.service.enqueue_badge_job(self.user_id, "module-1")
        message = self.queue.dequeue(block=False)
        self.assertEqual(message.body["userId"], self.user_id)
        self.assertEqual(message.body["moduleId"], "module-1")
        self.assertIsInstance(message.body["timestamp"], int)

    def test_get_user_badges_reads_through_cache(self):
        self.assertEqual(
            self.service.get_user_badges(self.user_id), {"badges": [], "source": "database"}
        )
        # Empty results are not cached.
        self.assertIsNone(self.cache.get_json(user_badges_key(self.user_id)))

        with self.db.Session() as session:
            session.add(BadgeAwardRow(user_id=self.user_id, badge_name="First Steps"))
            session.commit()
        self.assertEqual(
            self.service.get_user_badges(self.user_id),
            {"badges": ["First Steps"], "source": "database"},
        )
        self.assertEqual(
            self.service.get_user_badges(self.user_id),
            {"badges": ["First Steps"], "source": "cache"},
        )
        self.assertLessEqual(self.cache.ttl(user_badges_key(self.user_id)), 3600)


if __name__ == "__main__":
    unittest.main()
