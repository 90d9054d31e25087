"""
Unit tests for request schemas: rejected before any store access.
"""

import pytest
from pydantic import ValidationError

from authcore.schemas.auth import ResetPasswordIn
from authcore.schemas.biometric import EnrollBiometricIn
from authcore.schemas.mfa import DisableMfaIn, VerifyMfaLoginIn, VerifyMfaSetupIn
from authcore.schemas.user import CompleteProfileIn, UserCreate


def registration(**overrides):
    data = {
        "email": "new@example.com",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "password": "Password123!",
        "confirm_password": "Password123!",
    }
    data.update(overrides)
    return data


class TestUserCreate:
    def test_valid(self):
        user = UserCreate(**registration())

        assert user.email == "new@example.com"

    @pytest.mark.parametrize("password", [
        "password123!",   # no upper
        "PASSWORD123!",   # no lower
        "Password!!!!",   # no digit
        "Password1234",   # no special
        "Pa1!",           # too short
    ])
    def test_weak_passwords(self, password):
        with pytest.raises(ValidationError):
            UserCreate(**registration(password=password, confirm_password=password))

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            UserCreate(**registration(email="not-an-email"))

    def test_short_name(self):
        with pytest.raises(ValidationError):
            UserCreate(**registration(first_name="A"))

    def test_mismatched_confirmation_is_left_to_the_service(self):
        # 400 from the service, not 422 from validation
        user = UserCreate(**registration(confirm_password="Different123!"))

        assert user.password != user.confirm_password


class TestCompleteProfile:
    def valid(self, **overrides):
        data = {
            "address": "1 Main Street",
            "postal_code": "1051",
            "city": "Budapest",
            "country": "hu",
            "phone": "+36201234567",
        }
        data.update(overrides)
        return data

    def test_valid(self):
        assert CompleteProfileIn(**self.valid()).phone == "+36201234567"

    @pytest.mark.parametrize("phone", ["06201234567", "+0123456", "+36 20 123 4567", "phone"])
    def test_phone_must_be_international(self, phone):
        with pytest.raises(ValidationError):
            CompleteProfileIn(**self.valid(phone=phone))

    def test_country_is_two_letters(self):
        with pytest.raises(ValidationError):
            CompleteProfileIn(**self.valid(country="HUN"))


class TestMfaSchemas:
    @pytest.mark.parametrize("code", ["12345", "1234567", "abcdef", ""])
    def test_setup_code_is_six_digits(self, code):
        with pytest.raises(ValidationError):
            VerifyMfaSetupIn(code=code)

    def test_login_accepts_totp_or_backup_code(self):
        assert VerifyMfaLoginIn(mfa_token="mfa_x", code="123456").code == "123456"
        assert VerifyMfaLoginIn(mfa_token="mfa_x", code="ABCD2345").code == "ABCD2345"

    def test_login_code_length(self):
        with pytest.raises(ValidationError):
            VerifyMfaLoginIn(mfa_token="mfa_x", code="12345")

    def test_disable_requires_totp(self):
        with pytest.raises(ValidationError):
            DisableMfaIn(password="Password123!", code="ABCD2345")


class TestOtherSchemas:
    def test_reset_password_strength(self):
        with pytest.raises(ValidationError):
            ResetPasswordIn(token="t", password="weakpassword", confirm_password="weakpassword")

    def test_enroll_device_type(self):
        with pytest.raises(ValidationError):
            EnrollBiometricIn(device_id="d", device_name="Phone", device_type="WINDOWS", public_key="AAAA")
