import unittest
from unittest.mock import Mock

from fastapi.testclient import TestClient

from lifecraft.app import create_app
from lifecraft.dependencies import get_database, get_mailer, reset_backends
from lifecraft.errors import UpstreamServiceError
from lifecraft.tests.factories import make_module, mark_completed, signed_in


class AdminApiTests(unittest.TestCase):
    def setUp(self):
        reset_backends()
        self.app = create_app()
        self.client = TestClient(self.app)
        self.db = get_database()
        _, self.admin = signed_in(self.client, self.db, "admin@example.com", role="admin")
        self.ana_id, self.ana = signed_in(self.client, self.db, "ana@example.com")
        self.ben_id, _ = signed_in(self.client, self.db, "ben@example.com")

    def tearDown(self):
        self.app.dependency_overrides.clear()

    def test_dashboard_stats(self):
        first = make_module(self.db, title="One")
        make_module(self.db, title="Two")
        mark_completed(self.db, self.ana_id, first, 90)

        stats = self.client.get("/api/admin/stats", headers=self.admin).json()
        self.assertEqual(stats["totalParticipants"], 2)
        self.assertEqual(stats["totalModules"], 2)
        self.assertEqual(stats["totalDrills"], 0)
        self.assertEqual(stats["avgCompletionRate"], 100)
        self.assertEqual(stats["totalCertifications"], 1)

        metrics = self.client.get("/api/admin/performance", headers=self.admin).json()
        self.assertEqual(metrics, {"avgModuleScore": 90, "avgDrillScore": 0})

    def test_participants_and_search(self):
        module_id = make_module(self.db)
        mark_completed(self.db, self.ana_id, module_id, 70)

        everyone = self.client.get("/api/admin/participants", headers=self.admin).json()
        self.assertEqual({p["email"] for p in everyone}, {"ana@example.com", "ben@example.com"})

        found = self.client.get(
            "/api/admin/participants", params={"search": "ANA"}, headers=self.admin
        ).json()
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0]["modulesCompleted"], 1)
        self.assertEqual(found[0]["completionRate"], 100)

    def test_recent_activity(self):
        module_id = make_module(self.db, title="Flood Basics")
        self.client.post(f"/api/modules/{module_id}/start", headers=self.ana)
        activity = self.client.get(
            "/api/admin/activity", params={"limit": 5}, headers=self.admin
        ).json()
        self.assertEqual(activity[0]["action"], "Started Module")
        self.assertEqual(activity[0]["details"], "Flood Basics")
        self.assertEqual(activity[0]["user_name"], "ana")

    def test_completion_notification(self):
        mailer = Mock()
        mailer.send.return_value = "<abc@lifecraft>"
        self.app.dependency_overrides[get_mailer] = lambda: mailer

        response = self.client.post(
            "/api/notifications/completion",
            json={
                "email": "ana@example.com",
                "fullName": "Ana Cruz",
                "drillTitle": "Evacuation Drill",
                "drillDate": "2026-11-01",
                "drillLocation": "City Hall",
            },
            headers=self.admin,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"success": True, "messageId": "<abc@lifecraft>", "message": "Notification sent successfully"},
        )
        subject, text = mailer.send.call_args[0][:2]
        self.assertEqual(subject, "🎉 Drill Completed - Evacuation Drill")
        self.assertIn("Sunday, November 1, 2026", text)

    def test_notification_errors_map_to_status_codes(self):
        mailer = Mock()
        mailer.send.side_effect = UpstreamServiceError("Network error. Please check your internet connection.")
        self.app.dependency_overrides[get_mailer] = lambda: mailer
        payload = {"email": "ana@example.com", "fullName": "Ana", "drillTitle": "Drill"}

        response = self.client.post("/api/notifications/completion", json=payload, headers=self.admin)
        self.assertEqual(response.status_code, 502)

        missing = self.client.post(
            "/api/notifications/completion", json={"email": "ana@example.com"}, headers=self.admin
        )
        self.assertEqual(missing.status_code, 422)

    def test_notifications_are_admin_only(self):
        response = self.client.post(
            "/api/notifications/completion",
            json={"email": "ana@example.com", "fullName": "Ana", "drillTitle": "Drill"},
            headers=self.ana,
        )
        self.assertEqual(response.status_code, 403)


if __name__ == "__main__":
    unittest.main()
