"""Tests for operator registration, login and profile endpoints."""
import pytest

from app.config import settings
from app.main import app


class TestRegisterSuccess:
    """Test successful registration scenarios."""

    def test_register_success(self, client):
        """Valid registration returns 201 with operator and token."""
        response = client.post(
            "/auth/register",
            json={
                "email": "test@example.com",
                "password": "SecurePass123!"
            }
        )

        assert response.status_code == 201
        data = response.json()
        assert "operator" in data
        assert data["operator"]["email"] == "test@example.com"
        assert "id" in data["operator"]
        assert "access_token" in data
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 1440 * 60
        # Credentials are never echoed back
        assert "password" not in data["operator"]
        assert "hashed_password" not in data["operator"]


class TestRegisterDuplicate:
    """Test duplicate email handling."""

    def test_register_duplicate_email(self, client):
        """Registering with existing email returns 409."""
        # First registration
        client.post(
            "/auth/register",
            json={
                "email": "duplicate@example.com",
                "password": "SecurePass123!"
            }
        )

        # Second registration with same email
        response = client.post(
            "/auth/register",
            json={
                "email": "duplicate@example.com",
                "password": "DifferentPass456!"
            }
        )

        assert response.status_code == 409
        assert "email already registered" in response.json()["detail"].lower()


class TestRegisterValidation:
    """Test input validation for registration."""

    def test_register_invalid_email(self, client):
        """Invalid email format returns 422."""
        response = client.post(
            "/auth/register",
            json={
                "email": "not-an-email",
                "password": "SecurePass123!"
            }
        )

        assert response.status_code == 422

    def test_register_password_too_short(self, client):
        """Password shorter than 8 characters returns 422."""
        response = client.post(
            "/auth/register",
            json={
                "email": "test@example.com",
                "password": "Short1!"
            }
        )

        assert response.status_code == 422
        assert "8 characters" in response.json()["detail"][0]["msg"].lower()

    def test_register_password_no_number(self, client):
        """Password without a number returns 422."""
        response = client.post(
            "/auth/register",
            json={
                "email": "test@example.com",
                "password": "NoNumberHere!"
            }
        )

        assert response.status_code == 422
        assert "number" in response.json()["detail"][0]["msg"].lower()

    def test_register_password_no_special_char(self, client):
        """Password without a special character returns 422."""
        response = client.post(
            "/auth/register",
            json={
                "email": "test@example.com",
                "password": "NoSpecial123"
            }
        )

        assert response.status_code == 422
        assert "special" in response.json()["detail"][0]["msg"].lower()

    def test_register_empty_fields(self, client):
        """Empty email or password returns 422."""
        response = client.post(
            "/auth/register",
            json={
                "email": "",
                "password": ""
            }
        )

        assert response.status_code == 422


# === LOGIN TESTS ===


class TestLoginSuccess:
    """Test successful login scenarios."""

    def test_login_success(self, client):
        """Valid credentials return 200 with operator and token."""
        # First register an operator
        client.post(
            "/auth/register",
            json={
                "email": "login@example.com",
                "password": "SecurePass123!"
            }
        )

        # Then login
        response = client.post(
            "/auth/login",
            json={
                "email": "login@example.com",
                "password": "SecurePass123!"
            }
        )

        assert response.status_code == 200
        data = response.json()
        assert "operator" in data
        assert data["operator"]["email"] == "login@example.com"
        assert "id" in data["operator"]
        assert "access_token" in data
        assert data["token_type"] == "bearer"


class TestLoginFailure:
    """Test login failure scenarios."""

    def test_login_wrong_password(self, client):
        """Wrong password returns 401."""
        # First register an operator
        client.post(
            "/auth/register",
            json={
                "email": "wrongpass@example.com",
                "password": "SecurePass123!"
            }
        )

        # Try to login with wrong password
        response = client.post(
            "/auth/login",
            json={
                "email": "wrongpass@example.com",
                "password": "WrongPassword123!"
            }
        )

        assert response.status_code == 401
        assert "invalid" in response.json()["detail"].lower()

    def test_login_nonexistent_operator(self, client):
        """Unknown email returns the same 401 as a wrong password."""
        response = client.post(
            "/auth/login",
            json={
                "email": "nobody@example.com",
                "password": "SecurePass123!"
            }
        )

        assert response.status_code == 401
        assert "invalid" in response.json()["detail"].lower()


class TestLoginValidation:
    """Test login input validation."""

    def test_login_empty_fields(self, client):
        """Empty email or password returns 422."""
        response = client.post(
            "/auth/login",
            json={
                "email": "",
                "password": ""
            }
        )

        assert response.status_code == 422


# === PROFILE TESTS ===


class TestOperatorProfile:
    """Test the authenticated operator profile."""

    def test_me(self, auth_client):
        """Authenticated request returns the operator profile."""
        response = auth_client.get("/operators/me")

        assert response.status_code == 200
        assert response.json()["email"] == "test@example.com"

    def test_me_requires_token(self, client):
        """Missing token returns 401."""
        assert client.get("/operators/me").status_code == 401

    def test_me_rejects_bad_token(self, client):
        """Garbage token returns 401."""
        response = client.get("/operators/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401


def test_health(client):
    """Health check needs no authentication."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_debug_flag_comes_from_settings():
    assert app.debug == settings.debug


class TestDisabledOperator:
    """Disabled operators keep their history but lose access."""

    def test_login_rejected(self, client, db_session):
        from app.models.operator import Operator

        client.post("/auth/register", json={"email": "gone@example.com", "password": "SecurePass123!"})
        db_session.query(Operator).filter(Operator.email == "gone@example.com").update({"is_active": False})
        db_session.commit()

        response = client.post("/auth/login", json={"email": "gone@example.com", "password": "SecurePass123!"})

        assert response.status_code == 403

    def test_existing_token_rejected(self, auth_client, db_session):
        operator = auth_client.test_operator
        operator.is_active = False
        db_session.commit()

        assert auth_client.get("/operators/me").status_code == 401

    def test_login_records_time(self, client):
        client.post("/auth/register", json={"email": "seen@example.com", "password": "SecurePass123!"})

        response = client.post("/auth/login", json={"email": "SEEN@example.com", "password": "SecurePass123!"})

        assert response.status_code == 200
        assert response.json()["operator"]["last_login_at"] is not None
