import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship

from authcore.db.base import Base


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class UserStatus(str, enum.Enum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    PENDING_PROFILE = "PENDING_PROFILE"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    DELETED = "DELETED"


# Statuses that may not sign in
LOGIN_BLOCKED_STATUSES = (UserStatus.PENDING_VERIFICATION, UserStatus.SUSPENDED, UserStatus.DELETED)
# Statuses whose refresh tokens stop working
INACTIVE_STATUSES = (UserStatus.SUSPENDED, UserStatus.DELETED)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)  # stored lower-case
    password_hash = Column(String(150), nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)

    # Filled in by profile completion
    phone = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)
    postal_code = Column(String(20), nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(2), nullable=True)

    role = Column(Enum(UserRole, name="user_role"), default=UserRole.USER, nullable=False)
    status = Column(Enum(UserStatus, name="user_status"), default=UserStatus.PENDING_VERIFICATION, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)

    # Second factors
    mfa_enabled = Column(Boolean, default=False, nullable=False)
    biometric_enabled = Column(Boolean, default=False, nullable=False)
    token_version = Column(Integer, default=1, nullable=False)  # invalidate old JWTs

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    biometric_credentials = relationship("BiometricCredential", back_populates="user", cascade="all, delete-orphan")
    mfa_secret = relationship("MfaSecret", back_populates="user", uselist=False, cascade="all, delete-orphan")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', status='{self.status}')>"
