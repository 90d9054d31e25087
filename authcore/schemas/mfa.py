"""
Pydantic schemas for TOTP multi-factor authentication.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class MfaSetupOut(BaseModel):
    secret: str
    otpauth_url: str
    qr_code: str  # data:image/png;base64,...
    backup_codes: List[str]
    message: str = "Scan QR code with authenticator app and enter code to verify"


class VerifyMfaSetupIn(BaseModel):
    code: str = Field(..., pattern=r"^\d{6}$")


class VerifyMfaSetupOut(BaseModel):
    message: str = "MFA enabled successfully"
    enabled_at: datetime


class VerifyMfaLoginIn(BaseModel):
    mfa_token: str = Field(..., min_length=1)
    code: str = Field(..., min_length=6, max_length=8, description="TOTP code or backup code")


class MfaStatusOut(BaseModel):
    enabled: bool
    enabled_at: Optional[datetime] = None
    backup_codes_remaining: int


class RegenerateBackupCodesIn(BaseModel):
    password: str = Field(..., min_length=1)


class BackupCodesOut(BaseModel):
    codes: List[str]
    message: str = "New backup codes generated. Save these in a secure place."


class DisableMfaIn(BaseModel):
    password: str = Field(..., min_length=1)
    code: str = Field(..., pattern=r"^\d{6}$")
