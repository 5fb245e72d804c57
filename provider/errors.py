"""
Error taxonomy for the Provider gateway.

Every failure surfaced by the core is a ``ProviderError`` subclass whose
``kind`` identifies it and whose ``status_code`` is the HTTP status the
API layer answers with.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_REQUEST = "InvalidRequest"
    MISSING_KEY_CONFIGURATION = "MissingKeyConfiguration"
    MALFORMED_CIPHERTEXT = "MalformedCiphertext"
    DECRYPTION_FAILED = "DecryptionFailed"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    INVALID_GRANT = "InvalidGrant"
    UNAUTHORIZED = "Unauthorized"
    PROVIDER_REJECTED = "ProviderRejected"
    INVALID_PROVIDER_RESPONSE = "InvalidProviderResponse"
    SKIPPED = "Skipped"


class ProviderError(Exception):
    """Base class for all gateway errors."""

    kind: ErrorKind = ErrorKind.PROVIDER_REJECTED
    status_code: int = 500
    default_message: str = "Provider request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class InvalidRequest(ProviderError):
    kind = ErrorKind.INVALID_REQUEST
    status_code = 400
    default_message = "Required input is missing or malformed"


class MissingKeyConfiguration(ProviderError):
    kind = ErrorKind.MISSING_KEY_CONFIGURATION
    status_code = 500
    default_message = "Decryption key is not configured (TOSS_DECRYPTION_KEY)"


class MalformedCiphertext(ProviderError):
    kind = ErrorKind.MALFORMED_CIPHERTEXT
    status_code = 400
    default_message = "Encrypted value is not in the expected format"


class DecryptionFailed(ProviderError):
    kind = ErrorKind.DECRYPTION_FAILED
    status_code = 500
    default_message = "Failed to decrypt value"


class ProviderUnavailable(ProviderError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE
    status_code = 503
    default_message = "Could not reach the Provider API"


class InvalidGrant(ProviderError):
    kind = ErrorKind.INVALID_GRANT
    status_code = 400
    default_message = "Authorization code is expired or invalid"


class Unauthorized(ProviderError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401
    default_message = "Access token is invalid or expired"


class ProviderRejected(ProviderError):
    kind = ErrorKind.PROVIDER_REJECTED
    status_code = 502
    default_message = "Provider rejected the request"


class InvalidProviderResponse(ProviderError):
    kind = ErrorKind.INVALID_PROVIDER_RESPONSE
    status_code = 502
    default_message = "Provider returned an incomplete response"
