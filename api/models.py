"""
API request and response models for MoeAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field names follow the browser client's camelCase (callbackUrl, userId,
roleName, defaultRole) through aliases; populate_by_name lets tests and
Python callers use the snake_case names too.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AssignableRoleEnum(str, Enum):
    knight = "knight"
    civilian = "civilian"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Body for POST /api/auth/register.

    Only length caps live here. The credential rules (charset, email-like
    usernames, password minimum) are checked by the auth service so their
    failures come back as the same {"error"} body as a taken username.
    """

    username: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)


class CredentialsSignInRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)
    callback_url: Optional[str] = Field(default=None, alias="callbackUrl", max_length=2048)


class SignOutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    callback_url: Optional[str] = Field(default=None, alias="callbackUrl", max_length=2048)


class PromoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId")
    role_name: AssignableRoleEnum = Field(alias="roleName")


class ConfigUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    default_role: AssignableRoleEnum = Field(alias="defaultRole")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RegisteredUser(BaseModel):
    id: int
    username: str


class RegisterResponse(BaseModel):
    user: RegisteredUser


class SignInResponse(BaseModel):
    ok: bool = True
    url: str


class SignOutResponse(BaseModel):
    url: str


class RoleName(BaseModel):
    name: str


class SessionUserResponse(BaseModel):
    id: int
    username: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    roles: list[RoleName]


class SessionResponse(BaseModel):
    user: SessionUserResponse
    expires: Optional[str] = None


class ProviderInfo(BaseModel):
    id: str
    name: str


class PermissionCheckResponse(BaseModel):
    permission: str
    granted: bool


class PromoteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(serialization_alias="userId")
    role_name: str = Field(serialization_alias="roleName")


class ConfigResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    default_role: str = Field(serialization_alias="defaultRole")


class ErrorResponse(BaseModel):
    """Error body returned on 4xx/5xx responses.

    error is the human-readable (localized) message the UI shows as-is;
    code is the stable machine-readable identifier.
    """

    model_config = ConfigDict(frozen=True)

    error: str
    code: str
    detail: Optional[dict] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
