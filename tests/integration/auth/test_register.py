"""
Integration tests for account creation and onboarding.

Tests:
- POST /api/auth/register
- POST /api/auth/verify-email
- POST /api/auth/complete-profile
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.models.user import User, UserStatus
from tests.factories import UserFactory

PAYLOAD = {
    "email": "New.User@Example.com",
    "first_name": "New",
    "last_name": "User",
    "password": "Password123!",
    "confirm_password": "Password123!",
}

PROFILE = {
    "address": "1 Main Street",
    "postal_code": "1051",
    "city": "Budapest",
    "country": "hu",
    "phone": "+36201234567",
}


async def get_user(db_session: AsyncSession, email: str) -> User:
    result = await db_session.execute(select(User).where(User.email == email))
    return result.scalar_one()


@pytest.mark.asyncio
class TestRegisterEndpoint:
    """Test POST /api/auth/register endpoint."""

    async def test_register_success(self, client: AsyncClient, db_session: AsyncSession, mailer):
        response = await client.post("/api/auth/register", json=PAYLOAD)

        assert response.status_code == 201
        assert "Registration successful" in response.json()["message"]

        user = await get_user(db_session, "new.user@example.com")
        assert user.status == UserStatus.PENDING_VERIFICATION
        assert user.email_verified is False
        assert user.password_hash != "Password123!"
        assert mailer.sent[-1][:2] == ("verification", "new.user@example.com")

    async def test_register_password_mismatch(self, client: AsyncClient, mailer):
        response = await client.post("/api/auth/register", json={**PAYLOAD, "confirm_password": "Different123!"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Passwords do not match"
        assert mailer.sent == []

    async def test_register_duplicate_email(self, client: AsyncClient, db_session: AsyncSession):
        await UserFactory.create_async(db_session, email="new.user@example.com")
        await db_session.commit()

        response = await client.post("/api/auth/register", json=PAYLOAD)

        assert response.status_code == 409

    async def test_register_weak_password(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={**PAYLOAD, "password": "weakpass", "confirm_password": "weakpass"},
        )

        assert response.status_code == 422

    async def test_unverified_user_cannot_login(self, client: AsyncClient):
        await client.post("/api/auth/register", json=PAYLOAD)

        response = await client.post(
            "/api/auth/login", json={"email": "new.user@example.com", "password": "Password123!"}
        )

        assert response.status_code == 401


@pytest.mark.asyncio
class TestVerifyEmailEndpoint:
    """Test POST /api/auth/verify-email endpoint."""

    async def test_verify_email_signs_user_in(self, client: AsyncClient, db_session: AsyncSession, mailer):
        await client.post("/api/auth/register", json=PAYLOAD)

        response = await client.post("/api/auth/verify-email", json={"token": mailer.last_token("verification")})

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "new.user@example.com"
        assert data["user"]["status"] == "PENDING_PROFILE"
        assert data["user"]["email_verified"] is True
        assert "phone" not in data["user"]  # null fields omitted
        assert "password_hash" not in data["user"]
        assert data["tokens"]["token_type"] == "bearer"
        assert data["tokens"]["expires_in"] == 900

    async def test_verify_email_token_single_use(self, client: AsyncClient, mailer):
        await client.post("/api/auth/register", json=PAYLOAD)
        token = mailer.last_token("verification")
        await client.post("/api/auth/verify-email", json={"token": token})

        response = await client.post("/api/auth/verify-email", json={"token": token})

        assert response.status_code == 400

    async def test_verify_email_expired(self, client: AsyncClient, mailer, clock):
        await client.post("/api/auth/register", json=PAYLOAD)
        clock.advance(hours=25)

        response = await client.post("/api/auth/verify-email", json={"token": mailer.last_token("verification")})

        assert response.status_code == 400
        assert "expired" in response.json()["detail"]

    async def test_verify_email_unknown_token(self, client: AsyncClient):
        response = await client.post("/api/auth/verify-email", json={"token": "nope"})

        assert response.status_code == 400


@pytest.mark.asyncio
class TestCompleteProfileEndpoint:
    """Test POST /api/auth/complete-profile endpoint."""

    async def test_complete_profile_activates_account(self, client: AsyncClient, mailer):
        await client.post("/api/auth/register", json=PAYLOAD)
        verified = await client.post("/api/auth/verify-email", json={"token": mailer.last_token("verification")})
        headers = {"Authorization": f"Bearer {verified.json()['tokens']['access_token']}"}

        response = await client.post("/api/auth/complete-profile", headers=headers, json=PROFILE)

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["status"] == "ACTIVE"
        assert user["country"] == "HU"
        assert user["phone"] == "+36201234567"
        assert mailer.sent[-1][0] == "welcome"

    async def test_complete_profile_twice(self, client: AsyncClient, auth_headers):
        # The default test user is already ACTIVE
        response = await client.post("/api/auth/complete-profile", headers=auth_headers, json=PROFILE)

        assert response.status_code == 400

    async def test_complete_profile_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/auth/complete-profile", json=PROFILE)

        assert response.status_code == 401
