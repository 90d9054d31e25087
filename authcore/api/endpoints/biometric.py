"""
    Biometric endpoints (mounted under /api/auth/biometric)

    - /enroll: register this device's public key (authenticated).
    - /challenge, /authenticate: challenge-response sign-in (public).
    - /verify: re-prove possession before a sensitive action (authenticated).
    - /devices, /devices/{credential_id}, /settings: device management for the signed-in user.
"""
from fastapi import APIRouter, Depends, status

from authcore.api.dependencies import get_biometric_service, get_current_user
from authcore.models.user import User
from authcore.schemas.auth import AuthRefResponse
from authcore.schemas.biometric import (
    BiometricAuthenticateIn,
    BiometricChallengeIn,
    BiometricChallengeOut,
    BiometricCredentialOut,
    BiometricDeviceListOut,
    BiometricSettingsIn,
    BiometricSettingsOut,
    BiometricVerificationIn,
    BiometricVerificationOut,
    EnrollBiometricIn,
    UpdateBiometricDeviceIn,
)
from authcore.services.biometric import BiometricService

router = APIRouter()


@router.post("/enroll", response_model=BiometricCredentialOut, status_code=status.HTTP_201_CREATED)
async def enroll(
    payload: EnrollBiometricIn,
    current_user: User = Depends(get_current_user),
    service: BiometricService = Depends(get_biometric_service),
):
    return await service.enroll(current_user, payload)


@router.post("/challenge", response_model=BiometricChallengeOut)
async def challenge(payload: BiometricChallengeIn, service: BiometricService = Depends(get_biometric_service)):
    return await service.generate_challenge(payload.device_id)


@router.post("/authenticate", response_model=AuthRefResponse)
async def authenticate(payload: BiometricAuthenticateIn, service: BiometricService = Depends(get_biometric_service)):
    return await service.authenticate(payload.device_id, payload.credential_id, payload.signature, payload.challenge)


@router.post("/verify", response_model=BiometricVerificationOut)
async def verify(
    payload: BiometricVerificationIn,
    current_user: User = Depends(get_current_user),
    service: BiometricService = Depends(get_biometric_service),
):
    return await service.verify_for_sensitive_action(
        current_user,
        payload.action,
        payload.device_id,
        payload.credential_id,
        payload.signature,
        payload.challenge,
    )


@router.get("/devices", response_model=BiometricDeviceListOut)
async def list_devices(
    current_user: User = Depends(get_current_user),
    service: BiometricService = Depends(get_biometric_service),
):
    return await service.list_devices(current_user)


@router.patch("/devices/{credential_id}", response_model=BiometricCredentialOut)
async def update_device(
    credential_id: str,
    payload: UpdateBiometricDeviceIn,
    current_user: User = Depends(get_current_user),
    service: BiometricService = Depends(get_biometric_service),
):
    return await service.update_device(current_user, credential_id, payload)


@router.delete("/devices/{credential_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_device(
    credential_id: str,
    current_user: User = Depends(get_current_user),
    service: BiometricService = Depends(get_biometric_service),
):
    await service.remove_device(current_user, credential_id)


@router.put("/settings", response_model=BiometricSettingsOut)
async def update_settings(
    payload: BiometricSettingsIn,
    current_user: User = Depends(get_current_user),
    service: BiometricService = Depends(get_biometric_service),
):
    return await service.update_settings(current_user, payload.enabled)
