"""
Pydantic schemas for biometric (device key) authentication.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from authcore.models.biometric import BiometricDeviceType


class EnrollBiometricIn(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)
    device_name: str = Field(..., min_length=1, max_length=100)
    device_type: BiometricDeviceType
    public_key: str = Field(..., min_length=1, description="Base64 SubjectPublicKeyInfo (DER)")


class BiometricCredentialOut(BaseModel):
    id: int
    device_id: str
    device_name: str
    device_type: BiometricDeviceType
    credential_id: str
    is_active: bool
    enrolled_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BiometricChallengeIn(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)


class BiometricChallengeOut(BaseModel):
    challenge: str
    expires_at: datetime


class BiometricAuthenticateIn(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)
    credential_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
    challenge: str = Field(..., min_length=1)


class UpdateBiometricDeviceIn(BaseModel):
    device_name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


class BiometricDeviceListOut(BaseModel):
    devices: List[BiometricCredentialOut]
    biometric_enabled: bool


class BiometricSettingsIn(BaseModel):
    enabled: bool


class BiometricSettingsOut(BaseModel):
    biometric_enabled: bool
    enrolled_device_count: int


class BiometricVerificationIn(BiometricAuthenticateIn):
    action: str = Field(..., min_length=1)


class BiometricVerificationOut(BaseModel):
    verified: bool
    verified_at: datetime
    action: str
