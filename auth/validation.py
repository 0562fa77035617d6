"""
auth/validation.py -- Credential schema shared by the API, the web form and
the credentials provider.

Pydantic v2 model with field validators. Validators raise PydanticCustomError
with a message code as the error type so callers can map failures back to
localized text without parsing English messages.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from auth.errors import CredentialsValidationError

USERNAME_MAX_LEN = 20
PASSWORD_MIN_LEN = 8
# bcrypt only looks at the first 72 bytes
PASSWORD_MAX_BYTES = 72

_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def _fail(code: str) -> PydanticCustomError:
    return PydanticCustomError(code, code)


class AuthCredentials(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise _fail("username_required")
        if len(value) > USERNAME_MAX_LEN:
            raise _fail("username_too_long")
        if "@" in value:
            raise _fail("username_is_email")
        if not _USERNAME_RE.match(value):
            raise _fail("username_charset")
        return value

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        if len(value) < PASSWORD_MIN_LEN:
            raise _fail("password_too_short")
        if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise _fail("password_too_long")
        return value


def validate_credentials(username: str | None, password: str | None) -> AuthCredentials:
    """Parse raw input into AuthCredentials.

    Raises CredentialsValidationError with one message code per failing
    field. A missing value is reported as the "required"/"too short" code
    for that field rather than pydantic's generic missing error.
    """
    try:
        return AuthCredentials(username=username or "", password=password or "")
    except ValidationError as exc:
        field_errors: dict[str, str] = {}
        for err in exc.errors():
            if not err["loc"]:
                continue
            field_errors.setdefault(str(err["loc"][0]), err["type"])
        raise CredentialsValidationError(field_errors) from exc
