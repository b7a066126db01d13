"""Pydantic v2 request/response schemas for user endpoints."""

import uuid
from datetime import datetime

from pydantic import EmailStr, Field

from billing_engine.models.enums import UserRole
from billing_engine.schemas.common import ApiModel

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class UsuarioCreate(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., alias="nombre", min_length=1, max_length=255)
    role: UserRole = Field(UserRole.USER, alias="rol")
    country: str | None = Field(None, alias="pais", max_length=64)


class UsuarioUpdate(ApiModel):
    """Partial update. All fields optional."""

    email: EmailStr | None = None
    password: str | None = Field(None, min_length=8, max_length=128)
    name: str | None = Field(None, alias="nombre", min_length=1, max_length=255)
    role: UserRole | None = Field(None, alias="rol")
    is_active: bool | None = Field(None, alias="activo")
    country: str | None = Field(None, alias="pais", max_length=64)


class LoginRequest(ApiModel):
    email: EmailStr
    password: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class UsuarioResponse(ApiModel):
    """Public user profile; the credential hash is never exposed."""

    id: uuid.UUID
    email: str
    name: str = Field(..., alias="nombre")
    role: UserRole = Field(..., alias="rol")
    is_active: bool = Field(..., alias="activo")
    country: str | None = Field(None, alias="pais")
    created_at: datetime = Field(..., alias="fechaCreacion")


class TokenResponse(ApiModel):
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    token_type: str = Field("bearer", alias="tokenType")


class LoginResponse(ApiModel):
    usuario: UsuarioResponse
    tokens: TokenResponse
