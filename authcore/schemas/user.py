"""
Pydantic schemas for User entities.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from authcore.models.user import UserRole, UserStatus

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]+$")
PHONE_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")


def check_password_strength(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character (@$!%*?&)"
        )
    return value


class UserCreate(BaseModel):
    """Registration payload"""
    email: EmailStr
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return check_password_strength(value)


class CompleteProfileIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    postal_code: str = Field(..., min_length=1, max_length=20)
    city: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    phone: str

    @field_validator("phone")
    @classmethod
    def international_phone(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError("Phone must be in international format (e.g., +36201234567)")
        return value


class UserOut(BaseModel):
    """Public view of a user: no hashes, no second-factor material"""
    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    role: UserRole
    status: UserStatus
    email_verified: bool
    mfa_enabled: bool
    biometric_enabled: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserRef(BaseModel):
    id: int
    email: str
