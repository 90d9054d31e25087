"""
TOTP multi-factor authentication.

    BackupCodeManager      one-time recovery codes (bcrypt hashes only)
    PendingSessionManager  "password verified, second factor pending" tokens
    MfaService             setup / verify-setup / verify-login / status /
                           regenerate backup codes / disable

TOTP seeds are stored encrypted (see authcore.core.cipher). A seed that fails
to decrypt is treated as a wrong code, never as a server error.
"""

from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.cipher import SecretCipher
from authcore.core.clock import SystemClock, is_expired
from authcore.core.config import AuthConfig
from authcore.core.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    SecretDecryptionError,
    UnauthorizedError,
)
from authcore.core.security import (
    generate_backup_codes,
    generate_mfa_session_token,
    generate_totp_secret,
    get_password_hash,
    normalize_backup_code,
    totp_provisioning_uri,
    verify_password,
    verify_totp,
)
from authcore.helpers.qrcode_generator import generate_qr_code_base64
from authcore.logging import get_logger
from authcore.models.mfa import MfaBackupCode, MfaPendingSession, MfaSecret
from authcore.models.user import LOGIN_BLOCKED_STATUSES, User
from authcore.schemas.auth import AuthRefResponse, MfaPendingOut
from authcore.schemas.mfa import (
    BackupCodesOut,
    MfaSetupOut,
    MfaStatusOut,
    VerifyMfaSetupOut,
)
from authcore.schemas.user import UserRef
from authcore.services.tokens import TokenIssuer

logger = get_logger("auth.mfa")

INVALID_CODE = "Invalid verification code"


class BackupCodeManager:
    def __init__(self, db: AsyncSession, config: AuthConfig, clock: Optional[SystemClock] = None):
        self.db = db
        self.config = config
        self.clock = clock or SystemClock()

    async def create_batch(self, mfa_secret_id: int) -> List[str]:
        """Persist hashes of a new batch and return the plaintext codes (shown once)."""
        codes = generate_backup_codes(self.config.backup_code_count, self.config.backup_code_length)
        for code in codes:
            self.db.add(MfaBackupCode(
                mfa_secret_id=mfa_secret_id,
                code_hash=get_password_hash(code, rounds=self.config.bcrypt_rounds),
            ))
        await self.db.flush()
        return codes

    async def replace_batch(self, mfa_secret_id: int) -> List[str]:
        await self.delete_all(mfa_secret_id)
        return await self.create_batch(mfa_secret_id)

    async def delete_all(self, mfa_secret_id: int) -> None:
        await self.db.execute(delete(MfaBackupCode).where(MfaBackupCode.mfa_secret_id == mfa_secret_id))

    async def consume(self, mfa_secret_id: int, code: str) -> bool:
        """Accept an unused code once. The used_at update is conditional, so two
        concurrent submissions of the same code cannot both win."""
        normalized = normalize_backup_code(code)
        result = await self.db.execute(
            select(MfaBackupCode).where(
                MfaBackupCode.mfa_secret_id == mfa_secret_id,
                MfaBackupCode.used_at.is_(None),
            )
        )
        for backup_code in result.scalars().all():
            if not verify_password(normalized, backup_code.code_hash):
                continue
            marked = await self.db.execute(
                update(MfaBackupCode)
                .where(MfaBackupCode.id == backup_code.id, MfaBackupCode.used_at.is_(None))
                .values(used_at=self.clock.now())
            )
            return marked.rowcount == 1
        return False

    async def remaining(self, mfa_secret_id: int) -> int:
        result = await self.db.execute(
            select(func.count(MfaBackupCode.id)).where(
                MfaBackupCode.mfa_secret_id == mfa_secret_id,
                MfaBackupCode.used_at.is_(None),
            )
        )
        return result.scalar_one()


class PendingSessionManager:
    def __init__(self, db: AsyncSession, config: AuthConfig, clock: Optional[SystemClock] = None):
        self.db = db
        self.config = config
        self.clock = clock or SystemClock()

    async def create(self, user_id: int) -> MfaPendingOut:
        now = self.clock.now()
        expires_at = now + timedelta(minutes=self.config.mfa_session_expiry_minutes)

        await self.db.execute(
            delete(MfaPendingSession).where(
                MfaPendingSession.user_id == user_id,
                MfaPendingSession.expires_at < now,
            )
            .execution_options(synchronize_session=False)
        )
        token = generate_mfa_session_token()
        self.db.add(MfaPendingSession(user_id=user_id, token=token, expires_at=expires_at))
        await self.db.commit()

        return MfaPendingOut(mfa_token=token, expires_at=expires_at)

    async def get_active(self, token: str) -> MfaPendingSession:
        result = await self.db.execute(select(MfaPendingSession).where(MfaPendingSession.token == token))
        session = result.scalar_one_or_none()
        if not session:
            raise NotFoundError("Invalid or expired MFA session")

        if is_expired(session.expires_at, self.clock.now()):
            await self.db.execute(delete(MfaPendingSession).where(MfaPendingSession.id == session.id))
            await self.db.commit()
            logger.security("MFA session rejected", reason="expired", user_id=session.user_id)
            raise UnauthorizedError("MFA session expired. Please login again.")
        return session

    async def consume(self, session_id: int) -> bool:
        result = await self.db.execute(delete(MfaPendingSession).where(MfaPendingSession.id == session_id))
        return result.rowcount == 1

    async def delete_for_user(self, user_id: int) -> None:
        await self.db.execute(delete(MfaPendingSession).where(MfaPendingSession.user_id == user_id))


class MfaService:
    def __init__(
        self,
        db: AsyncSession,
        config: AuthConfig,
        cipher: SecretCipher,
        tokens: TokenIssuer,
        clock: Optional[SystemClock] = None,
    ):
        self.db = db
        self.config = config
        self.cipher = cipher
        self.tokens = tokens
        self.clock = clock or SystemClock()
        self.backup_codes = BackupCodeManager(db, config, self.clock)
        self.pending_sessions = PendingSessionManager(db, config, self.clock)

    async def _get_secret(self, user_id: int) -> Optional[MfaSecret]:
        result = await self.db.execute(select(MfaSecret).where(MfaSecret.user_id == user_id))
        return result.scalar_one_or_none()

    def _check_totp(self, mfa_secret: MfaSecret, code: str, user_id: int) -> bool:
        try:
            secret = self.cipher.decrypt(mfa_secret.encrypted_secret)
        except SecretDecryptionError as e:
            logger.security("Stored MFA secret could not be decrypted", reason=str(e), user_id=user_id)
            return False
        return verify_totp(secret, code, for_time=self.clock.now())

    # ==================== Setup ====================

    async def setup(self, user: User) -> MfaSetupOut:
        existing = await self._get_secret(user.id)
        if user.mfa_enabled and existing is not None and existing.is_verified:
            raise ConflictError("MFA is already enabled. Disable it first to set up again.")

        if existing is not None:
            # Superseded attempt
            await self.backup_codes.delete_all(existing.id)
            await self.db.execute(delete(MfaSecret).where(MfaSecret.id == existing.id))

        secret = generate_totp_secret()
        otpauth_url = totp_provisioning_uri(secret, user.email, self.config.issuer_name)
        qr_code = generate_qr_code_base64(otpauth_url)

        mfa_secret = MfaSecret(
            user_id=user.id,
            encrypted_secret=self.cipher.encrypt(secret),
            is_verified=False,
        )
        self.db.add(mfa_secret)
        await self.db.flush()
        codes = await self.backup_codes.create_batch(mfa_secret.id)
        await self.db.commit()

        logger.info("MFA setup started", user_id=user.id)
        return MfaSetupOut(secret=secret, otpauth_url=otpauth_url, qr_code=qr_code, backup_codes=codes)

    async def verify_setup(self, user: User, code: str) -> VerifyMfaSetupOut:
        mfa_secret = await self._get_secret(user.id)
        if mfa_secret is None:
            raise BadRequestError("MFA setup not initiated. Call setup endpoint first.")
        if mfa_secret.is_verified:
            raise ConflictError("MFA is already verified and enabled.")

        # Backup codes are deliberately not accepted here
        if not self._check_totp(mfa_secret, code, user.id):
            logger.security("MFA setup verification rejected", reason="invalid_totp", user_id=user.id)
            raise UnauthorizedError(INVALID_CODE)

        enabled_at = self.clock.now()
        mfa_secret.is_verified = True
        mfa_secret.enabled_at = enabled_at
        user.mfa_enabled = True
        await self.db.commit()

        logger.great("MFA enabled", user_id=user.id)
        return VerifyMfaSetupOut(enabled_at=enabled_at)

    # ==================== Login ====================

    async def create_pending_session(self, user_id: int) -> MfaPendingOut:
        return await self.pending_sessions.create(user_id)

    async def verify_login(self, mfa_token: str, code: str) -> AuthRefResponse:
        session = await self.pending_sessions.get_active(mfa_token)

        user = await self.db.get(User, session.user_id)
        mfa_secret = await self._get_secret(session.user_id)
        if user is None or mfa_secret is None or not mfa_secret.is_verified or not user.mfa_enabled:
            logger.security("MFA login rejected", reason="mfa_not_configured", user_id=session.user_id)
            raise UnauthorizedError(INVALID_CODE)
        if user.status in LOGIN_BLOCKED_STATUSES:
            logger.security("MFA login rejected", reason="account_blocked", user_id=user.id)
            raise UnauthorizedError(INVALID_CODE)

        method = "totp"
        valid = self._check_totp(mfa_secret, code, user.id)
        if not valid:
            method = "backup_code"
            valid = await self.backup_codes.consume(mfa_secret.id, code)

        if not valid:
            await self.db.commit()
            logger.security("MFA login rejected", reason="invalid_code", user_id=user.id)
            raise UnauthorizedError(INVALID_CODE)

        if not await self.pending_sessions.consume(session.id):
            # Another request finished this login; keep the backup code unspent
            await self.db.rollback()
            raise NotFoundError("Invalid or expired MFA session")

        tokens = await self.tokens.issue(user)
        logger.great("MFA login completed", user_id=user.id, method=method)
        return AuthRefResponse(user=UserRef(id=user.id, email=user.email), tokens=tokens)

    # ==================== Management ====================

    async def status(self, user: User) -> MfaStatusOut:
        mfa_secret = await self._get_secret(user.id)
        if mfa_secret is None:
            return MfaStatusOut(enabled=user.mfa_enabled, backup_codes_remaining=0)
        return MfaStatusOut(
            enabled=user.mfa_enabled,
            enabled_at=mfa_secret.enabled_at,
            backup_codes_remaining=await self.backup_codes.remaining(mfa_secret.id),
        )

    async def regenerate_backup_codes(self, user: User, password: str) -> BackupCodesOut:
        mfa_secret = await self._get_secret(user.id)
        if not user.mfa_enabled or mfa_secret is None or not mfa_secret.is_verified:
            raise BadRequestError("MFA is not enabled")

        if not verify_password(password, user.password_hash):
            logger.security("Backup code regeneration rejected", reason="invalid_password", user_id=user.id)
            raise UnauthorizedError("Invalid password")

        codes = await self.backup_codes.replace_batch(mfa_secret.id)
        await self.db.commit()

        logger.great("Backup codes regenerated", user_id=user.id)
        return BackupCodesOut(codes=codes)

    async def disable(self, user: User, password: str, code: str) -> None:
        mfa_secret = await self._get_secret(user.id)
        if not user.mfa_enabled or mfa_secret is None:
            raise BadRequestError("MFA is not enabled")

        if not verify_password(password, user.password_hash):
            logger.security("MFA disable rejected", reason="invalid_password", user_id=user.id)
            raise UnauthorizedError("Invalid password")
        if not self._check_totp(mfa_secret, code, user.id):
            logger.security("MFA disable rejected", reason="invalid_totp", user_id=user.id)
            raise UnauthorizedError(INVALID_CODE)

        await self.backup_codes.delete_all(mfa_secret.id)
        await self.db.execute(delete(MfaSecret).where(MfaSecret.id == mfa_secret.id))
        await self.pending_sessions.delete_for_user(user.id)
        user.mfa_enabled = False
        await self.db.commit()

        logger.great("MFA disabled", user_id=user.id)
