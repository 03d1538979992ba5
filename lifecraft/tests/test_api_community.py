import unittest

from fastapi.testclient import TestClient

from lifecraft.app import create_app
from lifecraft.dependencies import get_database, reset_backends
from lifecraft.tests.factories import signed_in


class CommunityApiTests(unittest.TestCase):
    def setUp(self):
        reset_backends()
        self.client = TestClient(create_app())
        db = get_database()
        _, self.admin = signed_in(self.client, db, "admin@example.com", role="admin")
        self.ana_id, self.ana = signed_in(self.client, db, "ana@example.com")
        _, self.ben = signed_in(self.client, db, "ben@example.com")
        self.session = self._create_session(certified=True, capacity=1)

    def _create_session(self, **overrides):
        payload = {
            "title": "CPR Workshop",
            "organization": "Red Cross",
            "date": "2026-11-14",
            "time": "10:00",
            "location": "Community Center",
            "capacity": 1,
        }
        payload.update(overrides)
        response = self.client.post("/api/admin/sessions", json=payload, headers=self.admin)
        self.assertEqual(response.status_code, 201)
        return response.json()

    def _register(self, headers, session_id=None):
        return self.client.post(
            f"/api/community/sessions/{session_id or self.session['id']}/register", headers=headers
        )

    def _mine(self, headers):
        sessions = self.client.get("/api/community/sessions", headers=headers).json()
        return next(s for s in sessions if s["id"] == self.session["id"])

    def test_pending_registrations_hold_capacity(self):
        self.assertEqual(self._register(self.ana).status_code, 201)

        again = self._register(self.ana)
        self.assertEqual(again.status_code, 409)
        self.assertIn("pending approval", again.json()["detail"])

        full = self._register(self.ben)
        self.assertEqual(full.status_code, 409)
        self.assertEqual(full.json()["detail"], "This session is full. Please choose another session.")

        listing = self._mine(self.ana)
        self.assertEqual(listing["user_registration"]["status"], "pending")
        # Pending registrations are not counted as seated.
        self.assertEqual(listing["registered_count"], 0)
        self.assertEqual(listing["available_spots"], 1)

    def test_unknown_session(self):
        self.assertEqual(self._register(self.ana, "missing").status_code, 404)

    def test_approval_and_completion(self):
        registration = self._register(self.ana).json()
        url = f"/api/admin/session-registrations/{registration['id']}"

        approved = self.client.patch(url, json={"status": "approved"}, headers=self.admin).json()
        self.assertEqual(approved["status"], "registered")
        listing = self._mine(self.ben)
        self.assertEqual(listing["registered_count"], 1)
        self.assertEqual(listing["available_spots"], 0)
        self.assertIsNone(listing["user_registration"])

        registrations = self.client.get("/api/admin/session-registrations", headers=self.admin).json()
        self.assertEqual(registrations[0]["session"]["organization"], "Red Cross")
        self.assertEqual(registrations[0]["profile"]["email"], "ana@example.com")

        done = self.client.post(f"{url}/complete", headers=self.admin).json()
        self.assertEqual(done["status"], "completed")

        upload = self.client.post(
            f"{url}/certificate",
            files={"file": ("cpr.pdf", b"%PDF-1.4", "application/pdf")},
            headers=self.admin,
        )
        self.assertEqual(upload.status_code, 200)

        certificates = self.client.get("/api/dashboard/certificates", headers=self.ana).json()
        self.assertEqual(certificates[0]["type"], "session")
        self.assertEqual(certificates[0]["organization"], "Red Cross")
        self.assertIn("certificates/sessions/", certificates[0]["certificate_url"])

    def test_uncertified_sessions_cannot_be_completed(self):
        plain = self._create_session(title="Neighbourhood Watch", certified=False, capacity=10)
        registration = self._register(self.ana, plain["id"]).json()
        response = self.client.post(
            f"/api/admin/session-registrations/{registration['id']}/complete", headers=self.admin
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["detail"], "This session is not a certified training session."
        )

    def test_empty_certificate_upload_rejected(self):
        registration = self._register(self.ana).json()
        response = self.client.post(
            f"/api/admin/session-registrations/{registration['id']}/certificate",
            files={"file": ("empty.pdf", b"", "application/pdf")},
            headers=self.admin,
        )
        self.assertEqual(response.status_code, 400)

    def test_session_maintenance(self):
        updated = self.client.patch(
            f"/api/admin/sessions/{self.session['id']}", json={"capacity": 5}, headers=self.admin
        ).json()
        self.assertEqual(updated["capacity"], 5)
        self.assertEqual(self._register(self.ana).status_code, 201)
        self.assertEqual(self._register(self.ben).status_code, 201)

        deleted = self.client.delete(f"/api/admin/sessions/{self.session['id']}", headers=self.admin)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.get("/api/community/sessions", headers=self.ana).json(), [])


if __name__ == "__main__":
    unittest.main()
