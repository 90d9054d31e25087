from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from authcore.db.base import Base


class MfaSecret(Base):
    __tablename__ = "mfa_secrets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    encrypted_secret = Column(String(255), nullable=False)  # iv:tag:ciphertext (hex)
    is_verified = Column(Boolean, default=False, nullable=False)
    enabled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="mfa_secret")
    backup_codes = relationship("MfaBackupCode", back_populates="mfa_secret", cascade="all, delete-orphan")


class MfaBackupCode(Base):
    __tablename__ = "mfa_backup_codes"

    id = Column(Integer, primary_key=True, index=True)
    mfa_secret_id = Column(Integer, ForeignKey("mfa_secrets.id", ondelete="CASCADE"), nullable=False, index=True)
    code_hash = Column(String(255), nullable=False)  # bcrypt
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    mfa_secret = relationship("MfaSecret", back_populates="backup_codes")


class MfaPendingSession(Base):
    """Password verified, second factor still required."""
    __tablename__ = "mfa_pending_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(100), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
