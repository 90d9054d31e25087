"""
Encryption at rest for TOTP seeds (AES-256-GCM).

Stored format: ``<iv hex>:<auth tag hex>:<ciphertext hex>``. The value is
self-contained: only the key is needed to decrypt it.

Key selection:
    - MFA_ENCRYPTION_KEY, when it is 64 hex characters (32 bytes).
    - Otherwise a key derived with scrypt from the JWT secret and a fixed
      application salt. This is a degraded mode: anyone holding the JWT secret
      can decrypt every seed. Configure MFA_ENCRYPTION_KEY in production.
"""

import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from authcore.core.errors import SecretDecryptionError

logger = logging.getLogger(__name__)

IV_BYTES = 12
TAG_BYTES = 16
KEY_BYTES = 32
KDF_SALT = b"mfa-salt"


def derive_key(secret: str) -> bytes:
    kdf = Scrypt(salt=KDF_SALT, length=KEY_BYTES, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


def resolve_encryption_key(configured_key: Optional[str], fallback_secret: str) -> bytes:
    if configured_key and len(configured_key) == KEY_BYTES * 2:
        try:
            return bytes.fromhex(configured_key)
        except ValueError:
            logger.warning("MFA_ENCRYPTION_KEY is not valid hex, deriving key from SECRET_KEY")
    else:
        logger.warning("MFA_ENCRYPTION_KEY not configured, deriving key from SECRET_KEY")
    return derive_key(fallback_secret)


class SecretCipher:
    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise ValueError("Encryption key must be 32 bytes")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_config(cls, configured_key: Optional[str], fallback_secret: str) -> "SecretCipher":
        return cls(resolve_encryption_key(configured_key, fallback_secret))

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_BYTES)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, stored: str) -> str:
        """Raises SecretDecryptionError for malformed, tampered or foreign-key values."""
        parts = (stored or "").split(":")
        if len(parts) != 3:
            raise SecretDecryptionError("Invalid encrypted secret format")
        try:
            iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as e:
            raise SecretDecryptionError("Invalid encrypted secret encoding") from e
        if len(iv) != IV_BYTES or len(tag) != TAG_BYTES:
            raise SecretDecryptionError("Invalid encrypted secret format")
        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise SecretDecryptionError("Encrypted secret failed authentication") from e
        return plaintext.decode("utf-8")
