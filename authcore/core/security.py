"""
Security primitives: password hashing, JWT access tokens, opaque tokens,
TOTP and backup codes.

Everything here is stateless; persistence and policy live in authcore.services.
"""

import base64
import binascii
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import bcrypt
import pyotp
from jose import jwt

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72

# No 0/O, 1/I/l
BACKUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

MFA_TOKEN_PREFIX = "mfa_"


# ==================== Passwords ====================

def _encode_secret(value: str) -> bytes:
    return value.encode("utf-8")[:BCRYPT_MAX_BYTES]


def get_password_hash(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(_encode_secret(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_encode_secret(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        return False


# ==================== JWT ====================

def create_access_token(
    data: Dict[str, Any],
    token_version: int,
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> str:
    issued_at = now or datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({
        "tv": token_version,
        "iat": issued_at,
        "exp": issued_at + (expires_delta or timedelta(minutes=15)),
    })
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> Dict[str, Any]:
    """Raises jose.JWTError (or ExpiredSignatureError) on any invalid token."""
    return jwt.decode(token, secret_key, algorithms=[algorithm])


# ==================== Opaque tokens ====================

def generate_secure_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def generate_mfa_session_token() -> str:
    return f"{MFA_TOKEN_PREFIX}{generate_secure_token()}"


def generate_challenge(nbytes: int = 32) -> str:
    return base64.b64encode(secrets.token_bytes(nbytes)).decode("ascii")


def is_valid_base64(value: str) -> bool:
    """Strict check: the value must round-trip through base64 unchanged."""
    if not value:
        return False
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return base64.b64encode(decoded).decode("ascii") == value


# ==================== TOTP ====================

def generate_totp_secret() -> str:
    return pyotp.random_base32()


def totp_provisioning_uri(secret: str, email: str, issuer: str) -> str:
    return pyotp.totp.TOTP(secret).provisioning_uri(name=email, issuer_name=issuer)


def verify_totp(secret: str, code: str, for_time: Optional[datetime] = None) -> bool:
    """Checks the code for the current 30 s step, tolerating one step of clock skew."""
    if not secret or not code:
        return False
    try:
        return pyotp.TOTP(secret).verify(code, for_time=for_time, valid_window=1)
    except (binascii.Error, ValueError, TypeError):
        return False


# ==================== Backup codes ====================

def generate_backup_code(length: int = 8) -> str:
    return "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))


def generate_backup_codes(count: int = 10, length: int = 8) -> List[str]:
    return [generate_backup_code(length) for _ in range(count)]


def normalize_backup_code(code: str) -> str:
    return "".join(code.split()).upper()
