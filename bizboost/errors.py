from __future__ import annotations


class AuthError(Exception):
    """Base class for errors that end the current request.

    Each subclass fixes the HTTP status it maps to and a stable ``kind``
    string that is logged and returned alongside the message.
    """

    status_code: int = 400
    kind: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NoSessionError(AuthError):
    status_code = 401
    kind = "no_session"

    def __init__(self, message: str = "No session") -> None:
        super().__init__(message)


class InvalidSessionError(AuthError):
    """Token is malformed, unknown or already cleared."""
    status_code = 401
    kind = "invalid_session"

    def __init__(self, message: str = "Invalid session") -> None:
        super().__init__(message)


class SessionExpiredError(AuthError):
    status_code = 401
    kind = "session_expired"

    def __init__(self, message: str = "Session expired") -> None:
        super().__init__(message)


class InvalidCredentialsError(AuthError):
    status_code = 401
    kind = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class ForbiddenError(AuthError):
    status_code = 403
    kind = "forbidden"


class NotFoundError(AuthError):
    status_code = 404
    kind = "not_found"


class ConflictError(AuthError):
    """Duplicate identity, including late storage-level uniqueness violations."""
    status_code = 409
    kind = "conflict"


class ValidationError(AuthError):
    status_code = 400
    kind = "validation_error"


class ExpiredCodeError(AuthError):
    """No live pending registration for the email."""
    status_code = 400
    kind = "expired"

    def __init__(self, message: str = "Verification code expired") -> None:
        super().__init__(message)


class InvalidCodeError(AuthError):
    status_code = 400
    kind = "invalid_code"

    def __init__(self, message: str = "Invalid verification code") -> None:
        super().__init__(message)


class ExternalServiceError(AuthError):
    status_code = 502
    kind = "external_service_failure"


class ProviderVerificationError(ExternalServiceError):
    """The OAuth provider did not vouch for the presented assertion."""
    status_code = 400
    kind = "provider_verification_failed"

    def __init__(self, message: str = "Google login failed") -> None:
        super().__init__(message)


class NotificationError(ExternalServiceError):
    """The verification email could not be dispatched."""

    def __init__(self, message: str = "Could not send verification email") -> None:
        super().__init__(message)
