"""
Integration tests for biometric device management and sensitive-action checks.

Tests:
- GET /api/auth/biometric/devices
- PATCH /api/auth/biometric/devices/{credential_id}
- DELETE /api/auth/biometric/devices/{credential_id}
- PUT /api/auth/biometric/settings
- POST /api/auth/biometric/verify
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import BiometricCredentialFactory, DeviceKey, UserFactory


async def enroll(client: AsyncClient, headers: dict, key: DeviceKey, device_id: str) -> str:
    response = await client.post(
        "/api/auth/biometric/enroll",
        headers=headers,
        json={"device_id": device_id, "device_name": device_id, "device_type": "ANDROID", "public_key": key.public_key_b64},
    )
    assert response.status_code == 201, response.text
    return response.json()["credential_id"]


@pytest.mark.asyncio
class TestListDevicesEndpoint:
    """Test GET /api/auth/biometric/devices endpoint."""

    async def test_newest_first(self, client: AsyncClient, auth_headers, device_key, clock):
        await enroll(client, auth_headers, device_key, "old-phone")
        clock.advance(days=1)
        await enroll(client, auth_headers, DeviceKey(), "new-phone")

        response = await client.get("/api/auth/biometric/devices", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [device["device_id"] for device in data["devices"]] == ["new-phone", "old-phone"]
        assert data["biometric_enabled"] is True

    async def test_only_own_devices(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, device_key
    ):
        other = await UserFactory.create_async(db_session)
        await BiometricCredentialFactory.create_async(
            db_session, user_id=other.id, public_key=device_key.public_key_b64
        )
        await db_session.commit()

        response = await client.get("/api/auth/biometric/devices", headers=auth_headers)

        assert response.json()["devices"] == []


@pytest.mark.asyncio
class TestUpdateDeviceEndpoint:
    """Test PATCH /api/auth/biometric/devices/{credential_id} endpoint."""

    async def test_rename_and_deactivate(self, client: AsyncClient, auth_headers, device_key):
        credential_id = await enroll(client, auth_headers, device_key, "phone")

        response = await client.patch(
            f"/api/auth/biometric/devices/{credential_id}",
            headers=auth_headers,
            json={"device_name": "Work phone", "is_active": False},
        )

        assert response.status_code == 200
        assert response.json()["device_name"] == "Work phone"
        assert response.json()["is_active"] is False
        challenge = await client.post("/api/auth/biometric/challenge", json={"device_id": "phone"})
        assert challenge.status_code == 404

    async def test_other_users_device(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, device_key
    ):
        other = await UserFactory.create_async(db_session)
        credential = await BiometricCredentialFactory.create_async(
            db_session, user_id=other.id, public_key=device_key.public_key_b64
        )
        await db_session.commit()

        response = await client.patch(
            f"/api/auth/biometric/devices/{credential.credential_id}",
            headers=auth_headers,
            json={"device_name": "Mine now"},
        )

        assert response.status_code == 404
        assert credential.device_name != "Mine now"


@pytest.mark.asyncio
class TestRemoveDeviceEndpoint:
    """Test DELETE /api/auth/biometric/devices/{credential_id} endpoint."""

    async def test_removing_last_device_clears_flag(self, client: AsyncClient, user, auth_headers, device_key):
        first = await enroll(client, auth_headers, device_key, "phone")
        second = await enroll(client, auth_headers, DeviceKey(), "tablet")

        response = await client.delete(f"/api/auth/biometric/devices/{first}", headers=auth_headers)
        assert response.status_code == 204
        assert user.biometric_enabled is True

        await client.delete(f"/api/auth/biometric/devices/{second}", headers=auth_headers)
        assert user.biometric_enabled is False

    async def test_remove_other_users_device(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, device_key
    ):
        other = await UserFactory.create_async(db_session, biometric_enabled=True)
        credential = await BiometricCredentialFactory.create_async(
            db_session, user_id=other.id, public_key=device_key.public_key_b64
        )
        await db_session.commit()

        response = await client.delete(f"/api/auth/biometric/devices/{credential.credential_id}", headers=auth_headers)

        assert response.status_code == 404
        assert other.biometric_enabled is True


@pytest.mark.asyncio
class TestSettingsEndpoint:
    """Test PUT /api/auth/biometric/settings endpoint."""

    async def test_enable_requires_active_device(self, client: AsyncClient, auth_headers):
        response = await client.put("/api/auth/biometric/settings", headers=auth_headers, json={"enabled": True})

        assert response.status_code == 400

    async def test_toggle(self, client: AsyncClient, user, auth_headers, device_key):
        await enroll(client, auth_headers, device_key, "phone")

        disabled = await client.put("/api/auth/biometric/settings", headers=auth_headers, json={"enabled": False})
        assert disabled.json() == {"biometric_enabled": False, "enrolled_device_count": 1}
        assert user.biometric_enabled is False

        enabled = await client.put("/api/auth/biometric/settings", headers=auth_headers, json={"enabled": True})
        assert enabled.json() == {"biometric_enabled": True, "enrolled_device_count": 1}


@pytest.mark.asyncio
class TestSensitiveActionVerification:
    """Test POST /api/auth/biometric/verify endpoint."""

    async def verify(self, client, headers, credential_id, challenge, signature, action="payment", device_id="phone"):
        return await client.post(
            "/api/auth/biometric/verify",
            headers=headers,
            json={
                "action": action,
                "device_id": device_id,
                "credential_id": credential_id,
                "challenge": challenge,
                "signature": signature,
            },
        )

    async def test_verified_with_signature(self, client: AsyncClient, auth_headers, device_key):
        credential_id = await enroll(client, auth_headers, device_key, "phone")
        challenge = (await client.post("/api/auth/biometric/challenge", json={"device_id": "phone"})).json()["challenge"]

        response = await self.verify(client, auth_headers, credential_id, challenge, device_key.sign(challenge))

        assert response.status_code == 200
        data = response.json()
        assert data["verified"] is True
        assert data["action"] == "payment"
        assert "tokens" not in data

    async def test_bad_signature(self, client: AsyncClient, auth_headers, device_key):
        credential_id = await enroll(client, auth_headers, device_key, "phone")
        challenge = (await client.post("/api/auth/biometric/challenge", json={"device_id": "phone"})).json()["challenge"]

        response = await self.verify(client, auth_headers, credential_id, challenge, DeviceKey().sign(challenge))

        assert response.status_code == 401

    async def test_not_required_when_biometrics_disabled(self, client: AsyncClient, auth_headers):
        response = await self.verify(client, auth_headers, "none", "none", "none", action="password_change")

        assert response.status_code == 200
        assert response.json()["verified"] is True

    async def test_unknown_action(self, client: AsyncClient, auth_headers):
        response = await self.verify(client, auth_headers, "none", "none", "none", action="launch_rockets")

        assert response.status_code == 400

    async def test_other_users_credential(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, make_auth_headers, device_key
    ):
        await enroll(client, auth_headers, DeviceKey(), "my-phone")
        other = await UserFactory.create_async(db_session)
        await db_session.commit()
        other_credential = await enroll(client, make_auth_headers(other), device_key, "phone")
        challenge = (await client.post("/api/auth/biometric/challenge", json={"device_id": "phone"})).json()["challenge"]

        response = await self.verify(client, auth_headers, other_credential, challenge, device_key.sign(challenge))

        assert response.status_code == 401
