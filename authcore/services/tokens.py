"""
Access/refresh token issuance, rotation and revocation.

Access tokens are short-lived JWTs carrying the user's identity and token
version. Refresh tokens are opaque random strings persisted so they can be
rotated and revoked.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import SystemClock, is_expired
from authcore.core.config import AuthConfig
from authcore.core.errors import UnauthorizedError
from authcore.core.security import create_access_token, generate_secure_token
from authcore.logging import get_logger
from authcore.models.tokens import RefreshToken
from authcore.models.user import INACTIVE_STATUSES, User
from authcore.schemas.auth import TokenPair

logger = get_logger("auth.tokens")

INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


class TokenIssuer:
    def __init__(self, db: AsyncSession, config: AuthConfig, clock: Optional[SystemClock] = None):
        self.db = db
        self.config = config
        self.clock = clock or SystemClock()

    def create_access_token(self, user: User) -> str:
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "role": _enum_value(user.role),
            "status": _enum_value(user.status),
        }
        return create_access_token(
            payload,
            token_version=user.token_version or 1,
            secret_key=self.config.secret_key,
            algorithm=self.config.algorithm,
            expires_delta=timedelta(seconds=self.config.access_token_seconds),
            now=self.clock.now(),
        )

    async def issue(self, user: User) -> TokenPair:
        """Mint an access token and persist a fresh refresh token. Commits."""
        refresh_token = generate_secure_token()
        self.db.add(RefreshToken(
            user_id=user.id,
            token=refresh_token,
            expires_at=self.clock.now() + timedelta(days=self.config.refresh_token_days),
        ))
        await self.db.commit()

        return TokenPair(
            access_token=self.create_access_token(user),
            refresh_token=refresh_token,
            expires_in=self.config.access_token_seconds,
        )

    async def rotate(self, refresh_token: str) -> TokenPair:
        """Revoke the presented refresh token and issue a brand-new pair."""
        now = self.clock.now()
        result = await self.db.execute(select(RefreshToken).where(RefreshToken.token == refresh_token))
        record = result.scalar_one_or_none()

        if not record:
            logger.security("Refresh rejected", reason="not_found")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        if record.revoked_at is not None:
            logger.security("Refresh rejected", reason="revoked", user_id=record.user_id)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        if is_expired(record.expires_at, now):
            logger.security("Refresh rejected", reason="expired", user_id=record.user_id)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        user = await self.db.get(User, record.user_id)
        if user is None or user.status in INACTIVE_STATUSES:
            logger.security("Refresh rejected", reason="account_inactive", user_id=record.user_id)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        if not await self._mark_revoked(record.id):
            logger.security("Refresh rejected", reason="concurrent_rotation", user_id=record.user_id)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        return await self.issue(user)

    async def revoke(self, refresh_token: str) -> None:
        """Logout. Unknown or already revoked tokens are not an error."""
        await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.token == refresh_token, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=self.clock.now())
        )
        await self.db.commit()

    async def revoke_all(self, user_id: int) -> int:
        """Revoke every live refresh token of a user. Does not commit."""
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=self.clock.now())
        )
        return result.rowcount

    async def _mark_revoked(self, record_id: int) -> bool:
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=self.clock.now())
        )
        return result.rowcount == 1


def _enum_value(value):
    return getattr(value, "value", value)
