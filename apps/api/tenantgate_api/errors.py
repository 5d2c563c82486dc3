"""Application errors mapped onto the uniform API error envelope.

Every identity or authorization failure leaves the process as one of these.
Public messages are fixed per class so callers cannot tell apart the internal
reason a request was rejected; the internal reason, when there is one, goes to
the server log only.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors that are rendered as an error envelope."""

    status_code: int = 500
    code: str = "INTERNAL"
    message: str = "Internal server error."

    def __init__(
        self,
        message: Optional[str] = None,
        details: Any = None,
        headers: Optional[dict[str, str]] = None,
        code: Optional[str] = None,
    ):
        self.message = message or self.message
        self.details = details
        self.headers = headers or {}
        if code:
            self.code = code
        super().__init__(self.message)


class UnauthenticatedError(AppError):
    """No, invalid or expired credential."""

    status_code = 401
    code = "UNAUTHENTICATED"
    message = "Not authenticated."


class LoginFailedError(AppError):
    """Credential login failed; same body for unknown email and wrong password."""

    status_code = 401
    code = "UNAUTHORIZED"
    message = "Login failed."


class InvalidCodeError(AppError):
    """Provisioning code unknown, expired, used, revoked or for another tenant."""

    status_code = 401
    code = "INVALID_CODE"
    message = "Invalid provisioning code."


class NotFoundError(AppError):
    """Absent, or owned by another tenant, or out of the caller's scope."""

    status_code = 404
    code = "NOT_FOUND"
    message = "Not found."


class RateLimitedError(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    message = "Too many requests. Please retry later."

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = max(1, int(retry_after))
        super().__init__(
            message,
            details={"retryAfterSec": self.retry_after},
            headers={"Retry-After": str(self.retry_after)},
        )


class ValidationFailedError(AppError):
    status_code = 400
    code = "INVALID_BODY"
    message = "Invalid request body."


class InvalidTokenError(AppError):
    status_code = 400
    code = "INVALID_TOKEN"
    message = "Token is invalid or expired."


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Conflict."


class MisconfiguredError(AppError):
    """Server-side configuration problem (e.g. a missing secret)."""

    status_code = 500
    code = "MISCONFIGURED"
    message = "Server misconfigured."

    def __init__(self, reason: str):
        # reason is for logs only; callers get the generic message
        self.reason = reason
        super().__init__()


class InternalError(AppError):
    status_code = 500
    code = "INTERNAL"
    message = "Internal server error."
