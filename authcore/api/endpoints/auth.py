"""
    Account and session endpoints

    - /register: creates an account pending email verification and mails the link.
    - /verify-email: consumes the verification link, signs the user in.
    - /complete-profile: last onboarding step, activates the account.
    - /login: password login. Accounts with MFA get a pending MFA token instead of tokens.
    - /refresh: rotates a refresh token into a brand-new pair.
    - /logout: revokes one refresh token (idempotent).
    - /forgot-password, /reset-password: password recovery by email link.
    - /me: the current user's profile.

    Login, forgot-password and MFA verification are rate limited per email/token and client IP.
"""
from fastapi import APIRouter, Depends, Request, status
from redis.asyncio import Redis

from authcore.api.dependencies import get_auth_service, get_current_user, get_redis
from authcore.core.errors import TooManyRequestsError
from authcore.helpers.rate_limit import allow
from authcore.models.user import User
from authcore.schemas.auth import (
    AuthResponse,
    ForgotPasswordIn,
    Login,
    LoginResult,
    MessageOut,
    ProfileCompletedOut,
    RefreshTokenIn,
    ResetPasswordIn,
    TokenPair,
    VerifyEmailIn,
)
from authcore.schemas.user import CompleteProfileIn, UserCreate, UserOut
from authcore.services.auth import AuthService

router = APIRouter()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/register", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def register(payload: UserCreate, service: AuthService = Depends(get_auth_service)):
    return await service.register(payload)


@router.post("/verify-email", response_model=AuthResponse, response_model_exclude_none=True)
async def verify_email(payload: VerifyEmailIn, service: AuthService = Depends(get_auth_service)):
    return await service.verify_email(payload.token)


@router.post("/complete-profile", response_model=ProfileCompletedOut, response_model_exclude_none=True)
async def complete_profile(
    payload: CompleteProfileIn,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return await service.complete_profile(current_user, payload)


@router.post("/login", response_model=LoginResult, response_model_exclude_none=True)
async def login(
    payload: Login,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    redis: Redis = Depends(get_redis),
):
    if not await allow(redis, "login", payload.email, client_ip(request), max_attempts=10, window_sec=900):
        raise TooManyRequestsError("Too many login attempts")
    return await service.login(payload.email, payload.password)


@router.post("/refresh", response_model=TokenPair)
async def refresh(payload: RefreshTokenIn, service: AuthService = Depends(get_auth_service)):
    return await service.refresh(payload.refresh_token)


@router.post("/logout", response_model=MessageOut)
async def logout(payload: RefreshTokenIn, service: AuthService = Depends(get_auth_service)):
    return await service.logout(payload.refresh_token)


@router.post("/forgot-password", response_model=MessageOut)
async def forgot_password(
    payload: ForgotPasswordIn,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    redis: Redis = Depends(get_redis),
):
    if not await allow(redis, "fp", payload.email, client_ip(request), max_attempts=5, window_sec=900):
        raise TooManyRequestsError()
    return await service.forgot_password(payload.email)


@router.post("/reset-password", response_model=MessageOut)
async def reset_password(payload: ResetPasswordIn, service: AuthService = Depends(get_auth_service)):
    return await service.reset_password(payload.token, payload.password, payload.confirm_password)


@router.get("/me", response_model=UserOut, response_model_exclude_none=True)
async def read_me(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return await service.get_me(current_user)
