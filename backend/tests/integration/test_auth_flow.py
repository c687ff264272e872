"""Integration tests for authentication flow

Tests cover:
- Self-service signup (always a student)
- Login with valid/invalid credentials and disabled accounts
- Token-based access to /auth/me
- Failed logins written to the audit log
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from auth.jwt import decode_token
from models.audit_log import AuditLog
from models.user import User

TEST_PASSWORD = "testpass123"


pytestmark = pytest.mark.integration


class TestSignup:
    """Test POST /auth/signup"""

    def test_signup_creates_student(self, client: TestClient, db_session: Session):
        response = client.post("/api/v1/auth/signup", json={
            "email": "New.Student@Test.edu",
            "full_name": "  New Student ",
            "password": "firstyear2024",
        })

        assert response.status_code == 201
        payload = decode_token(response.json()["access_token"])
        assert payload["role"] == "student"
        assert payload["email"] == "new.student@test.edu"

        user = db_session.query(User).filter(User.email == "new.student@test.edu").one()
        assert user.full_name == "New Student"
        assert user.role == "student"
        assert user.status == "ACTIVE"

    def test_signup_duplicate_email(self, client: TestClient, student: User):
        response = client.post("/api/v1/auth/signup", json={
            "email": "ASHA@test.edu",
            "full_name": "Imposter",
            "password": "firstyear2024",
        })
        assert response.status_code == 409

    @pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678901"])
    def test_signup_weak_password(self, client: TestClient, password: str):
        response = client.post("/api/v1/auth/signup", json={
            "email": "weak@test.edu",
            "full_name": "Weak Password",
            "password": password,
        })
        assert response.status_code == 422

    def test_signup_invalid_email(self, client: TestClient):
        response = client.post("/api/v1/auth/signup", json={
            "email": "not-an-email",
            "full_name": "Someone",
            "password": "firstyear2024",
        })
        assert response.status_code == 422


class TestLogin:
    """Test POST /auth/login"""

    def test_login_with_valid_credentials(self, client: TestClient, mentor: User):
        response = client.post("/api/v1/auth/login", json={
            "email": "mentor@test.edu",
            "password": TEST_PASSWORD,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] > 0
        payload = decode_token(body["access_token"])
        assert payload["sub"] == str(mentor.id)
        assert payload["role"] == "mentor"

    def test_login_email_is_case_insensitive(self, client: TestClient, student: User):
        response = client.post("/api/v1/auth/login", json={
            "email": "Asha@Test.EDU",
            "password": TEST_PASSWORD,
        })
        assert response.status_code == 200

    def test_login_updates_last_login(self, client: TestClient, db_session: Session, student: User):
        assert student.last_login_at is None
        client.post("/api/v1/auth/login", json={"email": student.email, "password": TEST_PASSWORD})

        db_session.refresh(student)
        assert student.last_login_at is not None

    def test_wrong_password(self, client: TestClient, db_session: Session, student: User):
        response = client.post("/api/v1/auth/login", json={
            "email": student.email,
            "password": "wrongpass123",
        })

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"
        failed = db_session.query(AuditLog).filter(AuditLog.action == "LOGIN_FAILED").one()
        assert failed.metadata_json["reason"] == "invalid_credentials"

    def test_unknown_email_same_message(self, client: TestClient):
        response = client.post("/api/v1/auth/login", json={
            "email": "nobody@test.edu",
            "password": TEST_PASSWORD,
        })

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_disabled_account(self, client: TestClient, db_session: Session, student: User):
        student.status = "DISABLED"
        db_session.commit()

        response = client.post("/api/v1/auth/login", json={
            "email": student.email,
            "password": TEST_PASSWORD,
        })

        assert response.status_code == 401
        assert response.json()["detail"] == "Account is disabled"


class TestMe:
    """Test GET /auth/me"""

    def test_me_returns_profile(self, client: TestClient, auth_headers, student: User):
        response = client.get("/api/v1/auth/me", headers=auth_headers(student))

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["id"] == str(student.id)
        assert user["role"] == "student"
        assert "password_hash" not in user

    def test_me_without_token(self, client: TestClient):
        response = client.get("/api/v1/auth/me")
        assert response.status_code in (401, 403)

    def test_me_with_garbage_token(self, client: TestClient):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    def test_disabled_user_token_rejected(self, client: TestClient, db_session: Session, auth_headers, student: User):
        headers = auth_headers(student)
        student.status = "DISABLED"
        db_session.commit()

        response = client.get("/api/v1/auth/me", headers=headers)

        assert response.status_code == 403
