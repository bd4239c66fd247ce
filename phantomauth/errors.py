"""
Error taxonomy for PhantomAuth.

Every failure surfaced to callers is a PhantomAuthError carrying a
stable code and an HTTP status so the transport layer can map it
without inspecting messages.
"""

from typing import Any, Dict, Optional


class PhantomAuthError(Exception):
    """Base class for all PhantomAuth errors."""

    code = "PHANTOMAUTH_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(PhantomAuthError):
    """Malformed input. Not retryable."""
    code = "VALIDATION_ERROR"
    status_code = 400


class ConfigurationError(PhantomAuthError):
    """Configuration rejected at startup."""
    code = "CONFIGURATION_ERROR"
    status_code = 500


class TokenExpiredError(PhantomAuthError):
    """A signed credential is past its expiry."""
    code = "TOKEN_EXPIRED"
    status_code = 401


# Invalid, tampered and not-found credentials all carry this message so
# callers cannot tell "never existed" from "forged" from "already used".
# The specific reason is only logged.
PUBLIC_INVALID_MESSAGE = "Invalid or expired credential"


class InvalidTokenError(PhantomAuthError):
    """Signature, shape or binding check failed. Terminal."""
    code = "INVALID_TOKEN"
    status_code = 401

    def __init__(self, message: str = PUBLIC_INVALID_MESSAGE, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class TamperedTokenError(InvalidTokenError):
    """Authenticated decryption failed."""


class CredentialNotFoundError(InvalidTokenError):
    """Structurally valid credential with no server-side record."""


class ContextMismatchError(PhantomAuthError):
    """The request context does not match the credential's context."""
    code = "CONTEXT_MISMATCH"
    status_code = 401

    def __init__(
        self,
        message: str = "Context verification failed",
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.retryable = retryable

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retryable"] = self.retryable
        return data


class AttemptsExhaustedError(PhantomAuthError):
    """Too many failed redemption attempts. Terminal."""
    code = "ATTEMPTS_EXHAUSTED"
    status_code = 401


class RateLimitedError(PhantomAuthError):
    """Quota exceeded; ``reset_at`` tells the client when to come back."""
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str, reset_at: float, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.reset_at = reset_at

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reset_at"] = self.reset_at
        return data


class DeliveryError(PhantomAuthError):
    """The login link could not be delivered."""
    code = "DELIVERY_FAILED"
    status_code = 502
