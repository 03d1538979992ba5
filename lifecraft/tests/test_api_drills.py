import unittest

from fastapi.testclient import TestClient

from lifecraft.app import create_app
from lifecraft.dependencies import get_database, get_storage_client, reset_backends
from lifecraft.tests.factories import make_module, mark_completed, points_of, signed_in


class DrillApiTests(unittest.TestCase):
    def setUp(self):
        reset_backends()
        self.client = TestClient(create_app())
        self.db = get_database()
        _, self.admin = signed_in(self.client, self.db, "admin@example.com", role="admin")
        self.user_id, self.learner = signed_in(self.client, self.db, "learner@example.com")

        self.virtual = self.client.post(
            "/api/admin/drills",
            json={
                "title": "Kitchen Fire",
                "type": "Virtual",
                "points": 50,
                "pages": [
                    {"title": "Intro", "content": "Stay calm."},
                    {
                        "title": "Grease fire",
                        "type": "question",
                        "question": "What do you use?",
                        "options": ["Water", "Lid"],
                        "correctAnswer": 1,
                        "points": 10,
                    },
                ],
            },
            headers=self.admin,
        ).json()
        self.physical = self.client.post(
            "/api/admin/drills",
            json={
                "title": "Evacuation Drill",
                "type": "Physical",
                "location": "City Hall",
                "date": "2026-11-01",
                "time": "09:00",
                "capacity": 30,
            },
            headers=self.admin,
        ).json()

    def _unlock(self):
        mark_completed(self.db, self.user_id, make_module(self.db), 80)

    def test_drills_require_a_completed_module(self):
        response = self.client.post(
            f"/api/drills/{self.virtual['id']}/start", headers=self.learner
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            response.json()["detail"],
            "You must complete at least one module before accessing drills.",
        )

    def test_content_is_ordered_pages(self):
        content = self.client.get(
            f"/api/drills/{self.virtual['id']}/content", headers=self.learner
        ).json()
        self.assertEqual([step["step_number"] for step in content], [1, 2])
        self.assertEqual(content[1]["content"]["correctAnswer"], 1)
        self.assertEqual(content[1]["points"], 10)

    def test_virtual_drill_scoring(self):
        self._unlock()
        drill_id = self.virtual["id"]
        self.client.post(f"/api/drills/{drill_id}/start", headers=self.learner)
        first = self.client.post(
            f"/api/drills/{drill_id}/complete",
            json={"score": 80, "completion_seconds": 95.5},
            headers=self.learner,
        ).json()
        self.assertEqual(first["pointsEarned"], 40)
        self.assertTrue(first["improved"])

        self.client.post(f"/api/drills/{drill_id}/start", headers=self.learner)
        retry = self.client.post(
            f"/api/drills/{drill_id}/complete",
            json={"score": 100, "completion_seconds": 120, "is_retry": True},
            headers=self.learner,
        ).json()
        self.assertEqual(retry["pointsEarned"], 0)
        self.assertEqual(retry["score"], 100)
        self.assertEqual(retry["completion_seconds"], 95.5)
        self.assertEqual(points_of(self.db, self.user_id), 40)

        stats = self.client.get("/api/drills/stats", headers=self.learner).json()
        self.assertEqual(stats, {"drillsCompleted": 1, "averageScore": 100, "scheduled": 0})
        history = self.client.get("/api/drills/history", headers=self.learner).json()
        self.assertEqual(history[0]["drill_title"], "Kitchen Fire")

        listing = self.client.get("/api/drills", headers=self.learner).json()
        mine = next(d for d in listing if d["id"] == drill_id)
        self.assertEqual(mine["user_drill"]["status"], "completed")

    def test_complete_without_start(self):
        self._unlock()
        response = self.client.post(
            f"/api/drills/{self.virtual['id']}/complete",
            json={"score": 80, "completion_seconds": 10},
            headers=self.learner,
        )
        self.assertEqual(response.status_code, 404)

    def test_physical_drills_cannot_be_played_virtually(self):
        self._unlock()
        drill_id = self.physical["id"]
        self.client.post(f"/api/drills/{drill_id}/register", headers=self.learner)

        started = self.client.post(f"/api/drills/{drill_id}/start", headers=self.learner)
        self.assertEqual(started.status_code, 400)
        self.assertEqual(started.json()["detail"], "This drill is not a virtual drill.")
        completed = self.client.post(
            f"/api/drills/{drill_id}/complete",
            json={"score": 100, "completion_seconds": 10},
            headers=self.learner,
        )
        self.assertEqual(completed.status_code, 400)

        self.assertEqual(points_of(self.db, self.user_id), 0)
        stats = self.client.get("/api/drills/stats", headers=self.learner).json()
        self.assertEqual(stats, {"drillsCompleted": 0, "averageScore": 0, "scheduled": 1})
        certificates = self.client.get("/api/dashboard/certificates", headers=self.learner).json()
        self.assertEqual(certificates, [])

    def test_physical_registration_rules(self):
        self._unlock()
        url = f"/api/drills/{self.physical['id']}/register"
        created = self.client.post(url, headers=self.learner)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["status"], "pending")

        again = self.client.post(url, headers=self.learner)
        self.assertEqual(again.status_code, 409)
        self.assertIn("pending approval", again.json()["detail"])

        virtual = self.client.post(
            f"/api/drills/{self.virtual['id']}/register", headers=self.learner
        )
        self.assertEqual(virtual.status_code, 400)
        missing = self.client.post("/api/drills/nope/register", headers=self.learner)
        self.assertEqual(missing.status_code, 404)

        stats = self.client.get("/api/drills/stats", headers=self.learner).json()
        self.assertEqual(stats["scheduled"], 1)

    def test_physical_drill_certificate_flow(self):
        self._unlock()
        registration = self.client.post(
            f"/api/drills/{self.physical['id']}/register", headers=self.learner
        ).json()
        registrations = self.client.get("/api/admin/drill-registrations", headers=self.admin).json()
        self.assertEqual(registrations[0]["email"], "learner@example.com")

        bad_status = self.client.patch(
            f"/api/admin/drill-registrations/{registration['id']}",
            json={"status": "pending"},
            headers=self.admin,
        )
        self.assertEqual(bad_status.status_code, 400)
        approved = self.client.patch(
            f"/api/admin/drill-registrations/{registration['id']}",
            json={"status": "approved"},
            headers=self.admin,
        ).json()
        self.assertEqual(approved["status"], "approved")

        done = self.client.post(
            f"/api/admin/drill-registrations/{registration['id']}/complete", headers=self.admin
        ).json()
        self.assertEqual(done["status"], "completed")

        upload = self.client.post(
            f"/api/admin/drill-registrations/{registration['id']}/certificate",
            files={"file": ("certificate.pdf", b"%PDF-1.4 test", "application/pdf")},
            headers=self.admin,
        )
        self.assertEqual(upload.status_code, 200)
        path = f"certificates/drills/{self.user_id}/{self.physical['id']}.pdf"
        self.assertEqual(upload.json()["path"], path)
        self.assertEqual(get_storage_client().stored_objects[path], b"%PDF-1.4 test")

        certificates = self.client.get("/api/dashboard/certificates", headers=self.learner).json()
        self.assertEqual(len(certificates), 1)
        self.assertEqual(certificates[0]["type"], "drill")
        self.assertEqual(certificates[0]["location"], "City Hall")
        self.assertIn(path, certificates[0]["certificate_url"])

        certified = self.client.get("/api/admin/certified-drills", headers=self.admin).json()
        self.assertEqual(certified[0]["id"], self.physical["id"])

        # No SMTP credentials in tests.
        email = self.client.post(
            f"/api/admin/drill-registrations/{registration['id']}/send-email", headers=self.admin
        )
        self.assertEqual(email.status_code, 503)
        self.assertEqual(email.json(), {"detail": "Email service not configured"})

    def test_admin_drill_statistics(self):
        stats = self.client.get("/api/admin/drill-stats", headers=self.admin).json()
        self.assertEqual({d["title"] for d in stats}, {"Kitchen Fire", "Evacuation Drill"})

        self.client.patch(
            f"/api/admin/drills/{self.virtual['id']}",
            json={"pages": [{"title": "Only step"}]},
            headers=self.admin,
        )
        content = self.client.get(
            f"/api/drills/{self.virtual['id']}/content", headers=self.learner
        ).json()
        self.assertEqual([step["step_title"] for step in content], ["Only step"])

        deleted = self.client.delete(f"/api/admin/drills/{self.virtual['id']}", headers=self.admin)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(
            self.client.get(f"/api/drills/{self.virtual['id']}", headers=self.learner).status_code,
            404,
        )


if __name__ == "__main__":
    unittest.main()
