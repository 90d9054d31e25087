"""
Account lifecycle and password login.

Login never reveals whether an account exists or what state it is in: every
failure produces the same error, and the precise reason only goes to the
security log. Accounts with MFA enabled get a pending session instead of
tokens.
"""

from datetime import timedelta
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import SystemClock, is_expired
from authcore.core.config import AuthConfig
from authcore.core.errors import BadRequestError, ConflictError, UnauthorizedError
from authcore.core.security import generate_secure_token, get_password_hash, verify_password
from authcore.logging import get_logger
from authcore.models.tokens import EmailVerificationToken, PasswordResetToken
from authcore.models.user import LOGIN_BLOCKED_STATUSES, User, UserStatus
from authcore.schemas.auth import AuthResponse, MessageOut, MfaPendingOut, ProfileCompletedOut, TokenPair
from authcore.schemas.user import CompleteProfileIn, UserCreate, UserOut
from authcore.services.mail import MailService
from authcore.services.mfa import PendingSessionManager
from authcore.services.tokens import TokenIssuer

logger = get_logger("auth.account")

INVALID_LOGIN = "Invalid email or password"
FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, you will receive a password reset link"


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        config: AuthConfig,
        tokens: TokenIssuer,
        mailer: MailService,
        clock: Optional[SystemClock] = None,
    ):
        self.db = db
        self.config = config
        self.tokens = tokens
        self.mailer = mailer
        self.clock = clock or SystemClock()
        self.pending_sessions = PendingSessionManager(db, config, self.clock)

    async def _get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    # ==================== Registration ====================

    async def register(self, data: UserCreate) -> MessageOut:
        if data.password != data.confirm_password:
            raise BadRequestError("Passwords do not match")

        email = data.email.strip().lower()
        if await self._get_by_email(email) is not None:
            raise ConflictError("An account with this email already exists")

        user = User(
            email=email,
            password_hash=get_password_hash(data.password, rounds=self.config.bcrypt_rounds),
            first_name=data.first_name,
            last_name=data.last_name,
            status=UserStatus.PENDING_VERIFICATION,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("An account with this email already exists")

        token = generate_secure_token()
        self.db.add(EmailVerificationToken(
            user_id=user.id,
            token=token,
            expires_at=self.clock.now() + timedelta(hours=self.config.email_verification_hours),
        ))
        await self.db.commit()

        await self.mailer.send_verification_email(user.email, user.first_name, token)
        logger.info("User registered", user_id=user.id)
        return MessageOut(message="Registration successful. Please check your email to verify your account.")

    async def verify_email(self, token: str) -> AuthResponse:
        result = await self.db.execute(select(EmailVerificationToken).where(EmailVerificationToken.token == token))
        record = result.scalar_one_or_none()

        if record is None:
            raise BadRequestError("Invalid verification token")
        if record.used_at is not None:
            raise BadRequestError("This token has already been used")
        if is_expired(record.expires_at, self.clock.now()):
            raise BadRequestError("Verification token has expired")

        now = self.clock.now()
        marked = await self.db.execute(
            update(EmailVerificationToken)
            .where(EmailVerificationToken.id == record.id, EmailVerificationToken.used_at.is_(None))
            .values(used_at=now)
        )
        if marked.rowcount != 1:
            raise BadRequestError("This token has already been used")

        user = await self.db.get(User, record.user_id)
        user.email_verified = True
        user.email_verified_at = now
        if user.status == UserStatus.PENDING_VERIFICATION:
            user.status = UserStatus.PENDING_PROFILE
        await self.db.commit()

        tokens = await self.tokens.issue(user)
        logger.great("Email verified", user_id=user.id)
        return AuthResponse(user=UserOut.model_validate(user), tokens=tokens)

    async def complete_profile(self, user: User, data: CompleteProfileIn) -> ProfileCompletedOut:
        if user.status != UserStatus.PENDING_PROFILE:
            raise BadRequestError("Profile already completed or email not verified")

        user.address = data.address
        user.postal_code = data.postal_code
        user.city = data.city
        user.country = data.country.upper()
        user.phone = data.phone
        user.status = UserStatus.ACTIVE
        await self.db.commit()

        await self.mailer.send_welcome_email(user.email, user.first_name)
        logger.info("Profile completed", user_id=user.id)
        return ProfileCompletedOut(
            user=UserOut.model_validate(user),
            message="Profile completed successfully. Welcome!",
        )

    # ==================== Sessions ====================

    async def login(self, email: str, password: str) -> Union[AuthResponse, MfaPendingOut]:
        user = await self._get_by_email(email)

        reason = None
        if user is None:
            reason = "unknown_email"
        elif not verify_password(password, user.password_hash):
            reason = "invalid_password"
        elif user.status in LOGIN_BLOCKED_STATUSES:
            reason = f"status_{user.status.value.lower()}"

        if reason:
            logger.security("Login rejected", reason=reason, user_id=user.id if user else None)
            raise UnauthorizedError(INVALID_LOGIN)

        if user.mfa_enabled:
            logger.info("Password verified, MFA required", user_id=user.id)
            return await self.pending_sessions.create(user.id)

        tokens = await self.tokens.issue(user)
        logger.great("Login", user_id=user.id)
        return AuthResponse(user=UserOut.model_validate(user), tokens=tokens)

    async def refresh(self, refresh_token: str) -> TokenPair:
        return await self.tokens.rotate(refresh_token)

    async def logout(self, refresh_token: str) -> MessageOut:
        await self.tokens.revoke(refresh_token)
        return MessageOut(message="Logged out successfully")

    # ==================== Password recovery ====================

    async def forgot_password(self, email: str) -> MessageOut:
        user = await self._get_by_email(email)
        if user is None or user.status == UserStatus.DELETED:
            logger.info("Password reset requested for unknown account")
            return MessageOut(message=FORGOT_PASSWORD_MESSAGE)

        now = self.clock.now()
        # Only the newest link stays usable
        await self.db.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.user_id == user.id, PasswordResetToken.used_at.is_(None))
            .values(used_at=now)
        )
        token = generate_secure_token()
        self.db.add(PasswordResetToken(
            user_id=user.id,
            token=token,
            expires_at=now + timedelta(minutes=self.config.password_reset_minutes),
        ))
        await self.db.commit()

        await self.mailer.send_password_reset_email(user.email, user.first_name, token)
        logger.info("Password reset requested", user_id=user.id)
        return MessageOut(message=FORGOT_PASSWORD_MESSAGE)

    async def reset_password(self, token: str, password: str, confirm_password: str) -> MessageOut:
        if password != confirm_password:
            raise BadRequestError("Passwords do not match")

        result = await self.db.execute(select(PasswordResetToken).where(PasswordResetToken.token == token))
        record = result.scalar_one_or_none()
        if record is None:
            raise BadRequestError("Invalid reset token")
        if record.used_at is not None:
            raise BadRequestError("This reset token has already been used")
        if is_expired(record.expires_at, self.clock.now()):
            raise BadRequestError("Reset token has expired")

        marked = await self.db.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.id == record.id, PasswordResetToken.used_at.is_(None))
            .values(used_at=self.clock.now())
        )
        if marked.rowcount != 1:
            raise BadRequestError("This reset token has already been used")

        user = await self.db.get(User, record.user_id)
        user.password_hash = get_password_hash(password, rounds=self.config.bcrypt_rounds)
        user.token_version = (user.token_version or 1) + 1
        revoked = await self.tokens.revoke_all(user.id)
        await self.db.commit()

        logger.great("Password reset", user_id=user.id, revoked_refresh_tokens=revoked)
        return MessageOut(message="Password reset successfully. Please log in with your new password.")

    async def get_me(self, user: User) -> UserOut:
        return UserOut.model_validate(user)
