"""
Data factories for test data generation.

Factories use factory-boy to create realistic test data with sensible defaults.
All factories support async creation via create_async() method.

Usage:
    from tests.factories import UserFactory, BiometricCredentialFactory, DeviceKey

    user = await UserFactory.create_async(db_session, email="custom@test.com")

    key = DeviceKey()
    credential = await BiometricCredentialFactory.create_async(
        db_session, user_id=user.id, public_key=key.public_key_b64
    )
"""

from tests.factories.user import UserFactory
from tests.factories.biometric import BiometricCredentialFactory, DeviceKey
from tests.factories.otp import totp_now, wrong_totp

__all__ = [
    "UserFactory",
    "BiometricCredentialFactory",
    "DeviceKey",
    "totp_now",
    "wrong_totp",
]
