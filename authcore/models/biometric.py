import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from authcore.db.base import Base


class BiometricDeviceType(str, enum.Enum):
    IOS = "IOS"
    ANDROID = "ANDROID"


class BiometricCredential(Base):
    """
    Public key enrolled by one device of one user.

    At most one credential per (user, device). `credential_id` is the opaque
    identifier the device presents back when authenticating.
    """
    __tablename__ = "biometric_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_biometric_credentials_user_device"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(255), nullable=False, index=True)
    device_name = Column(String(100), nullable=False)
    device_type = Column(Enum(BiometricDeviceType, name="biometric_device_type"), nullable=False)
    public_key = Column(Text, nullable=False)
    credential_id = Column(String(36), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    enrolled_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="biometric_credentials")

    def __repr__(self):
        return f"<BiometricCredential(id={self.id}, user_id={self.user_id}, device_id='{self.device_id}', active={self.is_active})>"


class BiometricChallenge(Base):
    """Single-use random challenge issued to one device; `used_at` is set exactly once."""
    __tablename__ = "biometric_challenges"

    id = Column(Integer, primary_key=True, index=True)
    challenge = Column(String(255), unique=True, index=True, nullable=False)
    device_id = Column(String(255), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
