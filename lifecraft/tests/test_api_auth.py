import unittest

from fastapi.testclient import TestClient

from lifecraft.app import create_app
from lifecraft.auth import AccountService, create_token
from lifecraft.config import get_settings
from lifecraft.dependencies import get_database, reset_backends
from lifecraft.tests.factories import PASSWORD, login


class AuthApiTests(unittest.TestCase):
    def setUp(self):
        reset_backends()
        self.client = TestClient(create_app())

    def _register(self, email="Learner@Example.com", password=PASSWORD):
        return self.client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "full_name": "Ana Cruz"},
        )

    def test_register_and_me(self):
        response = self._register()
        self.assertEqual(response.status_code, 201)
        profile = response.json()
        self.assertEqual(profile["email"], "learner@example.com")
        self.assertEqual(profile["role"], "student")
        self.assertEqual(profile["points"], 0)
        self.assertEqual(profile["rank_info"]["next"], "Responder")

        headers = login(self.client, "learner@example.com")
        me = self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["id"], profile["id"])

    def test_duplicate_email_conflicts(self):
        self._register()
        response = self._register(email="learner@example.com")
        self.assertEqual(response.status_code, 409)

    def test_short_password_rejected(self):
        self.assertEqual(self._register(password="short").status_code, 422)

    def test_form_login(self):
        self._register()
        response = self.client.post(
            "/api/auth/login",
            data={"username": "learner@example.com", "password": PASSWORD},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["token_type"], "bearer")

    def test_wrong_password(self):
        self._register()
        response = self.client.post(
            "/api/auth/login",
            json={"email": "learner@example.com", "password": "not-the-password"},
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"detail": "Incorrect email or password"})
        self.assertEqual(response.headers["www-authenticate"], "Bearer")

    def test_protected_routes_need_a_token(self):
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)
        response = self.client.get(
            "/api/auth/me", headers={"Authorization": "Bearer not-a-token"}
        )
        self.assertEqual(response.status_code, 401)

    def test_reset_token_is_not_an_access_token(self):
        user_id = self._register().json()["id"]
        token = create_token(user_id, get_settings(), purpose="reset")
        response = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(response.status_code, 401)

    def test_password_reset_flow(self):
        self._register()
        # Unknown addresses get the same answer.
        for email in ("learner@example.com", "nobody@example.com"):
            response = self.client.post("/api/auth/password-reset/request", json={"email": email})
            self.assertEqual(response.status_code, 202)

        token = AccountService(get_database()).request_password_reset("learner@example.com")
        response = self.client.post(
            "/api/auth/password-reset/confirm",
            json={"token": token, "new_password": "a-brand-new-secret"},
        )
        self.assertEqual(response.status_code, 200)

        login(self.client, "learner@example.com", "a-brand-new-secret")
        old = self.client.post(
            "/api/auth/login", json={"email": "learner@example.com", "password": PASSWORD}
        )
        self.assertEqual(old.status_code, 401)

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
