"""
Pydantic schemas for login, tokens and password recovery.
"""

from datetime import datetime
from typing import Union

from pydantic import BaseModel, EmailStr, Field, field_validator

from authcore.schemas.user import UserOut, UserRef, check_password_strength


class Login(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime, seconds
    token_type: str = "bearer"


class AuthResponse(BaseModel):
    user: UserOut
    tokens: TokenPair


class AuthRefResponse(BaseModel):
    """Second-factor logins only echo the identity the tokens belong to"""
    user: UserRef
    tokens: TokenPair


class MfaPendingOut(BaseModel):
    mfa_pending: bool = True
    mfa_token: str
    expires_at: datetime
    message: str = "Please enter your authenticator code"


LoginResult = Union[AuthResponse, MfaPendingOut]


class RefreshTokenIn(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class VerifyEmailIn(BaseModel):
    token: str = Field(..., min_length=1)


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ResetPasswordIn(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return check_password_strength(value)


class MessageOut(BaseModel):
    message: str


class ProfileCompletedOut(BaseModel):
    user: UserOut
    message: str
