from functools import lru_cache

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.cipher import SecretCipher
from authcore.core.clock import SystemClock
from authcore.core.config import AuthConfig, settings
from authcore.core.security import decode_access_token
from authcore.db.session import SessionAsync
from authcore.models.user import INACTIVE_STATUSES, User
from authcore.services.auth import AuthService
from authcore.services.biometric import BiometricService
from authcore.services.janitor import ChallengeJanitor
from authcore.services.mail import CeleryMailService, MailService
from authcore.services.mfa import MfaService
from authcore.services.tokens import TokenIssuer

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/auth/login",
    description="Bearer access token issued by login, MFA or biometric authentication"
)

_clock = SystemClock()
_janitor = ChallengeJanitor(SessionAsync, _clock)


async def get_db():
    async with SessionAsync() as session:
        yield session


async def get_redis():
    redis = aioredis.from_url(settings.REDIS_URL)
    try:
        yield redis
    finally:
        await redis.aclose()


def get_clock() -> SystemClock:
    return _clock


@lru_cache
def get_auth_config() -> AuthConfig:
    return AuthConfig.from_settings(settings)


@lru_cache
def _build_cipher(configured_key, fallback_secret) -> SecretCipher:
    # Key derivation is slow; do it once per key
    return SecretCipher.from_config(configured_key, fallback_secret)


def get_cipher(config: AuthConfig = Depends(get_auth_config)) -> SecretCipher:
    return _build_cipher(config.mfa_encryption_key, config.secret_key)


def get_mailer() -> MailService:
    return CeleryMailService()


def get_janitor() -> ChallengeJanitor:
    return _janitor


async def get_current_user(
        token: str = Depends(oauth2_scheme),
        db: AsyncSession = Depends(get_db),
        config: AuthConfig = Depends(get_auth_config),
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token, config.secret_key, config.algorithm)
        user_id = payload.get("sub")
        tv = payload.get("tv")
        if user_id is None or tv is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if not user or int(tv) != int(user.token_version or 1):
        raise credentials_exception
    if user.status in INACTIVE_STATUSES:
        raise credentials_exception
    return user


# ==================== Services ====================

def get_token_issuer(
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    clock: SystemClock = Depends(get_clock),
) -> TokenIssuer:
    return TokenIssuer(db, config, clock)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    tokens: TokenIssuer = Depends(get_token_issuer),
    mailer: MailService = Depends(get_mailer),
    clock: SystemClock = Depends(get_clock),
) -> AuthService:
    return AuthService(db, config, tokens, mailer, clock)


def get_mfa_service(
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    cipher: SecretCipher = Depends(get_cipher),
    tokens: TokenIssuer = Depends(get_token_issuer),
    clock: SystemClock = Depends(get_clock),
) -> MfaService:
    return MfaService(db, config, cipher, tokens, clock)


def get_biometric_service(
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    tokens: TokenIssuer = Depends(get_token_issuer),
    clock: SystemClock = Depends(get_clock),
    janitor: ChallengeJanitor = Depends(get_janitor),
) -> BiometricService:
    return BiometricService(db, config, tokens, clock, janitor)
