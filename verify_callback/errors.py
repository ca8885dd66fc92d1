"""
Error taxonomy for the verification callback.
Session-code errors map to HTTP statuses; verification errors map to redirect messages.
"""
from enum import Enum


class SessionCodeError(Exception):
    """Base for errors raised by the session-code store."""

    status_code = 500


class ValidationError(SessionCodeError):
    """Malformed input: code format, missing or implausible tokens."""

    status_code = 400


class NotFoundError(SessionCodeError):
    status_code = 404


class ExpiredError(SessionCodeError):
    status_code = 410


class VerificationReason(str, Enum):
    EXPIRED_LINK = "expired_link"
    ALREADY_VERIFIED = "already_verified"
    USER_NOT_FOUND = "user_not_found"
    INVALID_LINK = "invalid_link"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"


class VerificationError(Exception):
    """
    Verification could not complete. `reason` selects the user-facing message;
    `detail` is for operators and must never reach the end user.
    """

    def __init__(self, reason: VerificationReason, detail: str = ""):
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail


class ProviderError(VerificationError):
    """The identity provider rejected or failed the exchange."""

    def __init__(self, reason: VerificationReason, detail: str = "", status_code: int | None = None):
        super().__init__(reason, detail)
        self.status_code = status_code


class ProvisioningError(Exception):
    """Best-effort profile creation failed. Always non-fatal for verification."""


class RedirectTooLongError(ValueError):
    pass
