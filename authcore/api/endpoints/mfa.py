"""
    TOTP multi-factor endpoints (mounted under /api/auth/mfa)

    - /setup: new encrypted seed, provisioning URI, QR code and 10 backup codes.
    - /verify-setup: first TOTP code turns MFA on.
    - /verify-login: exchanges a pending MFA token plus TOTP or backup code for tokens.
    - /status, /backup-codes, /disable: management for the signed-in user.
"""
from fastapi import APIRouter, Depends, Request
from redis.asyncio import Redis

from authcore.api.dependencies import get_current_user, get_mfa_service, get_redis
from authcore.api.endpoints.auth import client_ip
from authcore.core.errors import TooManyRequestsError
from authcore.helpers.rate_limit import allow
from authcore.models.user import User
from authcore.schemas.auth import AuthRefResponse, MessageOut
from authcore.schemas.mfa import (
    BackupCodesOut,
    DisableMfaIn,
    MfaSetupOut,
    MfaStatusOut,
    RegenerateBackupCodesIn,
    VerifyMfaLoginIn,
    VerifyMfaSetupIn,
    VerifyMfaSetupOut,
)
from authcore.services.mfa import MfaService

router = APIRouter()


@router.post("/setup", response_model=MfaSetupOut)
async def setup(current_user: User = Depends(get_current_user), service: MfaService = Depends(get_mfa_service)):
    return await service.setup(current_user)


@router.post("/verify-setup", response_model=VerifyMfaSetupOut)
async def verify_setup(
    payload: VerifyMfaSetupIn,
    current_user: User = Depends(get_current_user),
    service: MfaService = Depends(get_mfa_service),
):
    return await service.verify_setup(current_user, payload.code)


@router.post("/verify-login", response_model=AuthRefResponse)
async def verify_login(
    payload: VerifyMfaLoginIn,
    request: Request,
    service: MfaService = Depends(get_mfa_service),
    redis: Redis = Depends(get_redis),
):
    if not await allow(redis, "mfa", payload.mfa_token, client_ip(request), max_attempts=5, window_sec=300):
        raise TooManyRequestsError("Too many verification attempts")
    return await service.verify_login(payload.mfa_token, payload.code)


@router.get("/status", response_model=MfaStatusOut)
async def mfa_status(current_user: User = Depends(get_current_user), service: MfaService = Depends(get_mfa_service)):
    return await service.status(current_user)


@router.post("/backup-codes", response_model=BackupCodesOut)
async def regenerate_backup_codes(
    payload: RegenerateBackupCodesIn,
    current_user: User = Depends(get_current_user),
    service: MfaService = Depends(get_mfa_service),
):
    return await service.regenerate_backup_codes(current_user, payload.password)


@router.post("/disable", response_model=MessageOut)
async def disable(
    payload: DisableMfaIn,
    current_user: User = Depends(get_current_user),
    service: MfaService = Depends(get_mfa_service),
):
    await service.disable(current_user, payload.password, payload.code)
    return {"message": "MFA disabled successfully"}
