"""
Verification of device signatures over biometric challenges (RSA PKCS#1 v1.5 + SHA-256).

Devices enrol a base64 SubjectPublicKeyInfo (DER) key; it is wrapped into a PEM block for loading.
"""

import base64
import binascii
import textwrap

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import load_pem_public_key

PEM_HEADER = "-----BEGIN PUBLIC KEY-----"
PEM_FOOTER = "-----END PUBLIC KEY-----"


def ensure_pem_format(public_key: str) -> str:
    if "-----BEGIN" in public_key:
        return public_key
    body = "\n".join(textwrap.wrap(public_key.strip(), 64))
    return f"{PEM_HEADER}\n{body}\n{PEM_FOOTER}\n"


def verify_signature(challenge: str, signature: str, public_key: str) -> bool:
    """True only if `signature` (base64) signs exactly `challenge` under `public_key`.

    Any decoding or key-loading problem counts as a failed verification.
    """
    try:
        signature_bytes = base64.b64decode(signature, validate=True)
        key = load_pem_public_key(ensure_pem_format(public_key).encode("ascii"))
        if not isinstance(key, rsa.RSAPublicKey):
            return False
        key.verify(signature_bytes, challenge.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
        return True
    except (InvalidSignature, UnsupportedAlgorithm, binascii.Error, ValueError, TypeError):
        return False
