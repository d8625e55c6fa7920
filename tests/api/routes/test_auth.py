"""Tests for authentication endpoints."""

import pytest
from httpx import AsyncClient

from portfolio_ledger.core.security import create_access_token

pytestmark = pytest.mark.integration

AUTH = "/api/v1/auth"


class TestRegister:
    async def test_register(self, client: AsyncClient):
        response = await client.post(
            f"{AUTH}/register",
            json={"email": "new@example.com", "username": "newuser", "password": "Secret123"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["username"] == "newuser"
        assert data["is_active"] is True
        assert "password" not in data
        assert "hashed_password" not in data

    async def test_duplicate_username(self, client: AsyncClient, test_user):
        response = await client.post(
            f"{AUTH}/register",
            json={"email": "else@example.com", "username": "testuser", "password": "Secret123"},
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "USERNAME_TAKEN"
        assert response.json()["success"] is False

    async def test_invalid_payload(self, client: AsyncClient):
        response = await client.post(
            f"{AUTH}/register",
            json={"email": "not-an-email", "username": "ab", "password": "short"},
        )
        assert response.status_code == 422


class TestLogin:
    async def test_login_and_me(self, client: AsyncClient, test_user):
        response = await client.post(
            f"{AUTH}/login", data={"username": "testuser", "password": "TestPass123"}
        )

        assert response.status_code == 200
        token = response.json()
        assert token["token_type"] == "bearer"

        me = await client.get(
            f"{AUTH}/me", headers={"Authorization": f"Bearer {token['access_token']}"}
        )
        assert me.status_code == 200
        assert me.json()["email"] == "testuser@example.com"

    async def test_login_with_email(self, client: AsyncClient, test_user):
        response = await client.post(
            f"{AUTH}/login", data={"username": "testuser@example.com", "password": "TestPass123"}
        )
        assert response.status_code == 200

    async def test_wrong_password(self, client: AsyncClient, test_user):
        response = await client.post(
            f"{AUTH}/login", data={"username": "testuser", "password": "nope"}
        )

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_login_is_rate_limited(self, client: AsyncClient, test_user):
        for _ in range(5):
            response = await client.post(
                f"{AUTH}/login", data={"username": "testuser", "password": "nope"}
            )
            assert response.status_code == 401

        response = await client.post(
            f"{AUTH}/login", data={"username": "testuser", "password": "TestPass123"}
        )

        assert response.status_code == 429
        assert response.json()["error_code"] == "RATE_LIMITED"
        assert response.headers["Retry-After"] == "60"


class TestCurrentUser:
    async def test_requires_token(self, client: AsyncClient):
        response = await client.get(f"{AUTH}/me")
        assert response.status_code == 401

    async def test_rejects_garbage_token(self, client: AsyncClient):
        response = await client.get(f"{AUTH}/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    async def test_inactive_user(self, client: AsyncClient, inactive_user_auth_headers):
        response = await client.get(f"{AUTH}/me", headers=inactive_user_auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Inactive user"

    async def test_token_for_deleted_user(self, client: AsyncClient):
        token = create_access_token({"sub": "ghost"})
        response = await client.get(f"{AUTH}/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
