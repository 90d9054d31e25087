"""
Biometric (device key) authentication.

A device enrols an RSA public key. To sign in it asks for a random challenge,
signs it with the private key held in its secure enclave and sends the
signature back. Challenges are single-use, expire after a few minutes and are
bound to the device they were issued for.

Every rejection is logged with its precise reason; the caller always sees
the same generic error.
"""

import uuid
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import SystemClock, is_expired
from authcore.core.config import AuthConfig
from authcore.core.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from authcore.core.security import generate_challenge, is_valid_base64
from authcore.core.signatures import verify_signature
from authcore.logging import get_logger
from authcore.models.biometric import BiometricChallenge, BiometricCredential
from authcore.models.user import LOGIN_BLOCKED_STATUSES, User
from authcore.schemas.auth import AuthRefResponse
from authcore.schemas.biometric import (
    BiometricChallengeOut,
    BiometricCredentialOut,
    BiometricDeviceListOut,
    BiometricSettingsOut,
    BiometricVerificationOut,
    EnrollBiometricIn,
    UpdateBiometricDeviceIn,
)
from authcore.schemas.user import UserRef
from authcore.services.janitor import ChallengeJanitor
from authcore.services.tokens import TokenIssuer

logger = get_logger("auth.biometric")

INVALID_CREDENTIAL_OR_CHALLENGE = "Invalid credential or challenge"

SENSITIVE_ACTIONS = frozenset({
    "payment",
    "profile_update",
    "password_change",
    "device_removal",
    "biometric_disable",
})


def is_biometric_required(action: str) -> bool:
    return action in SENSITIVE_ACTIONS


class ChallengeManager:
    def __init__(
        self,
        db: AsyncSession,
        config: AuthConfig,
        clock: Optional[SystemClock] = None,
        janitor: Optional[ChallengeJanitor] = None,
    ):
        self.db = db
        self.config = config
        self.clock = clock or SystemClock()
        self.janitor = janitor

    async def issue(self, device_id: str) -> BiometricChallenge:
        record = BiometricChallenge(
            challenge=generate_challenge(),
            device_id=device_id,
            expires_at=self.clock.now() + timedelta(minutes=self.config.challenge_expiry_minutes),
        )
        self.db.add(record)
        await self.db.commit()

        if self.janitor is not None:
            self.janitor.schedule()
        return record

    async def validate(self, challenge: str, device_id: str) -> BiometricChallenge:
        result = await self.db.execute(select(BiometricChallenge).where(BiometricChallenge.challenge == challenge))
        record = result.scalar_one_or_none()

        reason = None
        if record is None:
            reason = "challenge_not_found"
        elif record.used_at is not None:
            reason = "challenge_used"
        elif is_expired(record.expires_at, self.clock.now()):
            reason = "challenge_expired"
        elif record.device_id != device_id:
            reason = "device_mismatch"

        if reason:
            logger.security("Biometric challenge rejected", reason=reason, device_id=device_id)
            raise UnauthorizedError(INVALID_CREDENTIAL_OR_CHALLENGE)
        return record

    async def mark_used(self, record: BiometricChallenge) -> bool:
        """Only one caller can flip used_at from NULL."""
        result = await self.db.execute(
            update(BiometricChallenge)
            .where(BiometricChallenge.id == record.id, BiometricChallenge.used_at.is_(None))
            .values(used_at=self.clock.now())
        )
        return result.rowcount == 1


class BiometricService:
    def __init__(
        self,
        db: AsyncSession,
        config: AuthConfig,
        tokens: TokenIssuer,
        clock: Optional[SystemClock] = None,
        janitor: Optional[ChallengeJanitor] = None,
    ):
        self.db = db
        self.config = config
        self.tokens = tokens
        self.clock = clock or SystemClock()
        self.challenges = ChallengeManager(db, config, self.clock, janitor)

    # ==================== Enrollment ====================

    async def enroll(self, user: User, data: EnrollBiometricIn) -> BiometricCredentialOut:
        existing = await self.db.execute(
            select(BiometricCredential.id).where(
                BiometricCredential.user_id == user.id,
                BiometricCredential.device_id == data.device_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("Device already enrolled for biometric authentication")

        if not is_valid_base64(data.public_key):
            raise BadRequestError("Invalid public key format")

        credential = BiometricCredential(
            user_id=user.id,
            device_id=data.device_id,
            device_name=data.device_name,
            device_type=data.device_type,
            public_key=data.public_key,
            credential_id=str(uuid.uuid4()),
            is_active=True,
            enrolled_at=self.clock.now(),
        )
        self.db.add(credential)
        user.biometric_enabled = True
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent enrollment of the same device
            await self.db.rollback()
            raise ConflictError("Device already enrolled for biometric authentication")

        logger.great("Biometric device enrolled", user_id=user.id, device_id=data.device_id)
        return BiometricCredentialOut.model_validate(credential)

    # ==================== Authentication ====================

    async def generate_challenge(self, device_id: str) -> BiometricChallengeOut:
        result = await self.db.execute(
            select(BiometricCredential.id).where(
                BiometricCredential.device_id == device_id,
                BiometricCredential.is_active.is_(True),
            ).limit(1)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("No active biometric credential for this device")

        record = await self.challenges.issue(device_id)
        return BiometricChallengeOut(challenge=record.challenge, expires_at=record.expires_at)

    async def _verify_possession(
        self,
        device_id: str,
        credential_id: str,
        challenge: str,
        signature: str,
        user_id: Optional[int] = None,
    ) -> BiometricCredential:
        """Credential, challenge and signature checks shared by sign-in and re-verification."""
        query = select(BiometricCredential).where(
            BiometricCredential.device_id == device_id,
            BiometricCredential.credential_id == credential_id,
            BiometricCredential.is_active.is_(True),
        )
        if user_id is not None:
            query = query.where(BiometricCredential.user_id == user_id)
        result = await self.db.execute(query)
        credential = result.scalar_one_or_none()
        if credential is None:
            logger.security("Biometric authentication rejected", reason="credential_not_found", device_id=device_id)
            raise UnauthorizedError(INVALID_CREDENTIAL_OR_CHALLENGE)

        user = await self.db.get(User, credential.user_id)
        if user is None or not user.biometric_enabled:
            logger.security("Biometric authentication rejected", reason="biometric_disabled", user_id=credential.user_id)
            raise UnauthorizedError(INVALID_CREDENTIAL_OR_CHALLENGE)
        if user.status in LOGIN_BLOCKED_STATUSES:
            logger.security("Biometric authentication rejected", reason="account_blocked", user_id=user.id)
            raise UnauthorizedError(INVALID_CREDENTIAL_OR_CHALLENGE)

        record = await self.challenges.validate(challenge, device_id)

        if not verify_signature(record.challenge, signature, credential.public_key):
            logger.security("Biometric authentication rejected", reason="invalid_signature", user_id=user.id)
            raise UnauthorizedError(INVALID_CREDENTIAL_OR_CHALLENGE)

        if not await self.challenges.mark_used(record):
            logger.security("Biometric authentication rejected", reason="challenge_used", user_id=user.id)
            raise UnauthorizedError(INVALID_CREDENTIAL_OR_CHALLENGE)

        credential.last_used_at = self.clock.now()
        return credential

    async def authenticate(self, device_id: str, credential_id: str, signature: str, challenge: str) -> AuthRefResponse:
        credential = await self._verify_possession(device_id, credential_id, challenge, signature)
        await self.db.commit()

        user = await self.db.get(User, credential.user_id)
        tokens = await self.tokens.issue(user)
        logger.great("Biometric login", user_id=user.id, device_id=device_id)
        return AuthRefResponse(user=UserRef(id=user.id, email=user.email), tokens=tokens)

    async def verify_for_sensitive_action(
        self,
        user: User,
        action: str,
        device_id: str,
        credential_id: str,
        signature: str,
        challenge: str,
    ) -> BiometricVerificationOut:
        if not is_biometric_required(action):
            raise BadRequestError(f"Unknown sensitive action: {action}")

        verified_at = self.clock.now()
        if not user.biometric_enabled:
            return BiometricVerificationOut(verified=True, verified_at=verified_at, action=action)

        await self._verify_possession(device_id, credential_id, challenge, signature, user_id=user.id)
        await self.db.commit()

        logger.great("Sensitive action verified", user_id=user.id, action=action)
        return BiometricVerificationOut(verified=True, verified_at=verified_at, action=action)

    # ==================== Device management ====================

    async def _get_own_credential(self, user: User, credential_id: str) -> BiometricCredential:
        result = await self.db.execute(
            select(BiometricCredential).where(
                BiometricCredential.credential_id == credential_id,
                BiometricCredential.user_id == user.id,
            )
        )
        credential = result.scalar_one_or_none()
        if credential is None:
            raise NotFoundError("Biometric device not found")
        return credential

    async def list_devices(self, user: User) -> BiometricDeviceListOut:
        result = await self.db.execute(
            select(BiometricCredential)
            .where(BiometricCredential.user_id == user.id)
            .order_by(BiometricCredential.enrolled_at.desc(), BiometricCredential.id.desc())
        )
        devices: List[BiometricCredentialOut] = [
            BiometricCredentialOut.model_validate(c) for c in result.scalars().all()
        ]
        return BiometricDeviceListOut(devices=devices, biometric_enabled=user.biometric_enabled)

    async def update_device(self, user: User, credential_id: str, data: UpdateBiometricDeviceIn) -> BiometricCredentialOut:
        credential = await self._get_own_credential(user, credential_id)
        if data.device_name is not None:
            credential.device_name = data.device_name
        if data.is_active is not None:
            credential.is_active = data.is_active
        await self.db.commit()

        logger.info("Biometric device updated", user_id=user.id, credential_id=credential_id)
        return BiometricCredentialOut.model_validate(credential)

    async def remove_device(self, user: User, credential_id: str) -> None:
        credential = await self._get_own_credential(user, credential_id)
        await self.db.execute(delete(BiometricCredential).where(BiometricCredential.id == credential.id))

        remaining = await self._count_credentials(user.id)
        if remaining == 0:
            user.biometric_enabled = False
        await self.db.commit()

        logger.great("Biometric device removed", user_id=user.id, credential_id=credential_id, remaining=remaining)

    async def update_settings(self, user: User, enabled: bool) -> BiometricSettingsOut:
        if enabled and await self._count_credentials(user.id, active_only=True) == 0:
            raise BadRequestError("Enroll a biometric device before enabling biometric authentication")

        user.biometric_enabled = enabled
        await self.db.commit()

        logger.info("Biometric settings updated", user_id=user.id, enabled=enabled)
        return BiometricSettingsOut(
            biometric_enabled=enabled,
            enrolled_device_count=await self._count_credentials(user.id),
        )

    async def _count_credentials(self, user_id: int, active_only: bool = False) -> int:
        query = select(func.count(BiometricCredential.id)).where(BiometricCredential.user_id == user_id)
        if active_only:
            query = query.where(BiometricCredential.is_active.is_(True))
        result = await self.db.execute(query)
        return result.scalar_one()
