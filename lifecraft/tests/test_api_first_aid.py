import unittest

from fastapi.testclient import TestClient

from lifecraft.app import create_app
from lifecraft.dependencies import get_database, reset_backends
from lifecraft.tests.factories import signed_in


class FirstAidApiTests(unittest.TestCase):
    def setUp(self):
        reset_backends()
        self.client = TestClient(create_app())
        db = get_database()
        _, self.admin = signed_in(self.client, db, "admin@example.com", role="admin")
        self.user_id, self.learner = signed_in(self.client, db, "learner@example.com")
        self.cpr = self._create("Adult CPR", "Cardiac", "Essential", "Chest compressions")
        self.burns = self._create("Treating Burns", "Burns", "Beginner", "Cool the burn")

    def _create(self, title, category, difficulty, description):
        response = self.client.post(
            "/api/admin/tutorials",
            json={
                "title": title,
                "category": category,
                "difficulty": difficulty,
                "description": description,
                "steps": 5,
            },
            headers=self.admin,
        )
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_search_and_filter(self):
        found = self.client.get("/api/first-aid/tutorials", params={"search": "compress"}).json()
        self.assertEqual([t["id"] for t in found], [self.cpr["id"]])

        by_title = self.client.get("/api/first-aid/tutorials", params={"search": "BURNS"}).json()
        self.assertEqual([t["id"] for t in by_title], [self.burns["id"]])

        burns = self.client.get("/api/first-aid/tutorials", params={"category": "Burns"}).json()
        self.assertEqual([t["title"] for t in burns], ["Treating Burns"])

        categories = self.client.get("/api/first-aid/categories").json()
        self.assertEqual(sorted(categories), ["Burns", "Cardiac"])

        missing = self.client.get("/api/first-aid/tutorials/nope")
        self.assertEqual(missing.status_code, 404)

    def test_progress_stats_and_recommendations(self):
        recommended = self.client.get("/api/first-aid/recommended", headers=self.learner).json()
        self.assertEqual(recommended[0]["id"], self.cpr["id"])

        done = self.client.post(
            f"/api/first-aid/tutorials/{self.cpr['id']}/complete", headers=self.learner
        )
        self.assertEqual(done.status_code, 200)
        self.assertTrue(done.json()["completed"])
        # Completing twice keeps one progress row.
        self.client.post(f"/api/first-aid/tutorials/{self.cpr['id']}/complete", headers=self.learner)
        progress = self.client.get("/api/first-aid/progress", headers=self.learner).json()
        self.assertEqual(len(progress), 1)

        stats = self.client.get("/api/first-aid/stats", headers=self.learner).json()
        self.assertEqual(stats, {"total": 2, "completed": 1, "inProgress": 1, "completionRate": 50})

        recommended = self.client.get("/api/first-aid/recommended", headers=self.learner).json()
        self.assertEqual([t["id"] for t in recommended], [self.burns["id"]])

    def test_admin_certificates_for_completed_tutorials(self):
        url = f"/api/admin/tutorials/{self.cpr['id']}/certificate/{self.user_id}"
        files = {"file": ("cpr.pdf", b"%PDF-1.4", "application/pdf")}
        self.assertEqual(self.client.post(url, files=files, headers=self.admin).status_code, 404)

        self.client.post(f"/api/first-aid/tutorials/{self.cpr['id']}/complete", headers=self.learner)
        users = self.client.get(
            f"/api/admin/tutorials/{self.cpr['id']}/completed-users", headers=self.admin
        ).json()
        self.assertEqual(users[0]["email"], "learner@example.com")

        upload = self.client.post(url, files=files, headers=self.admin)
        self.assertEqual(upload.status_code, 200)
        self.assertEqual(
            upload.json()["path"], f"certificates/tutorials/{self.user_id}/{self.cpr['id']}.pdf"
        )

    def test_tutorial_maintenance(self):
        updated = self.client.patch(
            f"/api/admin/tutorials/{self.burns['id']}", json={"steps": 7}, headers=self.admin
        ).json()
        self.assertEqual(updated["steps"], 7)
        self.assertEqual(updated["title"], "Treating Burns")

        deleted = self.client.delete(f"/api/admin/tutorials/{self.burns['id']}", headers=self.admin)
        self.assertEqual(deleted.status_code, 200)
        remaining = self.client.get("/api/first-aid/tutorials").json()
        self.assertEqual([t["id"] for t in remaining], [self.cpr["id"]])


if __name__ == "__main__":
    unittest.main()
