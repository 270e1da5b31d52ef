"""Exception taxonomy for the authentication core.

The store raises these; the auth service recovers every family except
``RecordValidationError`` into result values, so none of them reach the
HTTP layer for user input or storage conditions.
"""
from __future__ import annotations

from contract import (
    MSG_EMAIL_TAKEN,
    MSG_INVALID_CREDENTIALS,
    MSG_USERNAME_TAKEN,
    ValidationReport,
)


class AuthError(Exception):
    """Base class for auth-core errors.  ``code`` is stable for logs."""

    code = "auth_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AuthError):
    """Raised when register/login input is missing or out of range."""

    code = "validation_error"


class DuplicateCredentialError(AuthError):
    """Raised when a unique credential is already taken."""

    code = "duplicate_credential"

    def __init__(self, field: str, value: str, message: str) -> None:
        self.field = field
        self.value = value
        super().__init__(message)


class DuplicateEmailError(DuplicateCredentialError):
    code = "duplicate_email"

    def __init__(self, email: str) -> None:
        super().__init__("email", email, MSG_EMAIL_TAKEN)


class DuplicateUsernameError(DuplicateCredentialError):
    code = "duplicate_username"

    def __init__(self, username: str) -> None:
        super().__init__("username", username, MSG_USERNAME_TAKEN)


class AuthenticationFailure(AuthError):
    """Raised when an email/password pair does not match.

    The message is identical for unknown emails and wrong passwords.
    """

    code = "invalid_credentials"

    def __init__(self) -> None:
        super().__init__(MSG_INVALID_CREDENTIALS)


class StorageError(AuthError):
    """Raised when the backing store fails an operation."""

    code = "storage_error"

    def __init__(self, operation: str, cause: str) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(cause)


class StorageConflictError(StorageError):
    """A constraint violation that is not a known duplicate credential."""

    code = "storage_conflict"


class RecordValidationError(AuthError):
    """Raised when a record about to be written breaks a contract rule."""

    code = "record_invalid"

    def __init__(self, report: ValidationReport) -> None:
        self.report = report
        super().__init__(report.summary())
