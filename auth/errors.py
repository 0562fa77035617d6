"""
auth/errors.py -- Domain exceptions raised by the auth service.

Each error carries a stable message code (see core/messages.py) and the HTTP
status the API layer should answer with. The API converts them into
{"error": <message>, "code": <code>}; the web UI shows them as toasts.
"""

from __future__ import annotations

from core.messages import t


class AuthError(Exception):
    code: str = "auth_error"
    status_code: int = 400

    def __init__(self, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(self.code)

    @property
    def message(self) -> str:
        return t(self.code)


class UsernameExistsError(AuthError):
    code = "username_exists"
    status_code = 409


class InvalidCredentialsError(AuthError):
    """Raised for unknown user, OAuth-only user and wrong password alike."""

    code = "invalid_credentials"
    status_code = 401


class RegistrationDisabledError(AuthError):
    code = "registration_disabled"
    status_code = 403


class OAuthSignInError(AuthError):
    code = "oauth_failed"
    status_code = 400


class InvalidRoleError(AuthError):
    code = "invalid_role"
    status_code = 400


class UserNotFoundError(AuthError):
    code = "user_not_found"
    status_code = 404


class CredentialsValidationError(AuthError):
    """Input failed the credential schema.

    field_errors maps a field name ("username" / "password") to a message
    code, first failure per field.
    """

    code = "validation_error"
    status_code = 422

    def __init__(self, field_errors: dict[str, str]) -> None:
        super().__init__()
        self.field_errors = field_errors

    @property
    def message(self) -> str:
        # The first field error is the most useful single line for a toast.
        first = next(iter(self.field_errors.values()), self.code)
        return t(first)

    def localized(self) -> dict[str, str]:
        return {name: t(code) for name, code in self.field_errors.items()}
