from __future__ import annotations


class DomainError(Exception):
    """Base for every error that may cross a layer boundary."""

    code = "InternalError"
    default_message = "Unexpected error."

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ValidationError(DomainError):
    code = "ValidationError"
    default_message = "Invalid request."


class AuthenticationError(DomainError):
    code = "Unauthorized"
    default_message = "Invalid or expired token."


class AuthorizationError(DomainError):
    code = "Forbidden"
    default_message = "Operation not allowed."


class ConflictError(DomainError):
    code = "Conflict"
    default_message = "Resource already exists."


class NotFoundError(DomainError):
    code = "NotFound"
    default_message = "Resource not found."


class UpstreamError(DomainError):
    code = "UpstreamError"
    default_message = "Identity provider request failed."


class InternalError(DomainError):
    code = "InternalError"


class UserAlreadyExistsError(ConflictError):
    code = "UserExists"
    default_message = "An account with this email already exists."


class WeakPasswordError(ValidationError):
    code = "InvalidPassword"
    default_message = (
        "Password does not meet requirements. "
        "Must contain uppercase, lowercase, numbers, and special characters."
    )


class InvalidCodeError(ValidationError):
    code = "InvalidCode"
    default_message = "Invalid verification code."


class ExpiredCodeError(ValidationError):
    code = "ExpiredCode"
    default_message = "Verification code has expired. Please request a new one."


class InvalidProviderError(ValidationError):
    code = "InvalidProvider"


class InvalidCredentialsError(AuthenticationError):
    code = "InvalidCredentials"
    default_message = "Incorrect email or password."


class InvalidTokenError(AuthenticationError):
    code = "Unauthorized"


class RefreshRejectedError(AuthenticationError):
    code = "RefreshError"
    default_message = "Failed to refresh tokens. Please sign in again."


class InvalidStateError(AuthenticationError):
    code = "InvalidState"
    default_message = "Sign-in request expired or was tampered with. Please try again."


class SessionRejectedError(AuthenticationError):
    """Refresh credential did not resolve to a usable device session."""

    code = "InvalidSession"
    default_message = "Session expired or invalid. Please sign in again."

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message)


class UserNotConfirmedError(AuthorizationError):
    code = "UserNotConfirmed"
    default_message = "Please verify your email before signing in."


class UserNotFoundError(NotFoundError):
    code = "UserNotFound"
    default_message = "User not found."


class SessionNotFoundError(NotFoundError):
    code = "SessionNotFound"
    default_message = "Session not found."


class DuplicateUserError(ConflictError):
    """Unique constraint on external subject id was hit by a concurrent writer."""

    code = "UserExists"


class SocialLoginError(UpstreamError):
    code = "SocialAuthError"
    default_message = "Social authentication failed."
