"""
Error taxonomy shared by the auth services.

Services raise these instead of HTTP exceptions; `authcore.main` maps them to
JSON responses. Messages for unauthorized outcomes are deliberately generic.
"""

from typing import Dict, Optional


class AuthError(Exception):
    status_code: int = 400
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class BadRequestError(AuthError):
    status_code = 400
    default_detail = "Invalid request"


class UnauthorizedError(AuthError):
    status_code = 401
    default_detail = "Invalid credentials"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class NotFoundError(AuthError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(AuthError):
    status_code = 409
    default_detail = "Conflict"


class TooManyRequestsError(AuthError):
    status_code = 429
    default_detail = "Too many requests"


class SecretDecryptionError(Exception):
    """Stored TOTP secret could not be decrypted (wrong key, tampering or corruption)."""
