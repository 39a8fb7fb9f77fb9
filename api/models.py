"""
API request and response models for CourseGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Password fields carry no length constraints here: PasswordHasher owns the
password policy and reports violations as a 400 ValidationError.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Principal, Role

EMAIL_PATTERN = r"^[\w.+-]+@([\w-]+\.)+[\w-]{2,}$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register. New accounts are always students."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    token: str = Field(min_length=1, max_length=128)
    password: str


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    """Public view of a Principal. Credential and reset fields are never included."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: Role
    last_active: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            id=principal.id or "",
            name=principal.name,
            email=principal.email,
            role=principal.role,
            last_active=principal.last_active,
            created_at=principal.created_at,
        )


class AuthResponse(BaseModel):
    success: bool = True
    message: str
    user: PrincipalResponse


class SessionResponse(BaseModel):
    """GET /auth/session -- reports whether the caller has a session, never fails."""

    success: bool = True
    authenticated: bool
    user: Optional[PrincipalResponse] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ForgotPasswordResponse(MessageResponse):
    # Populated only when DEBUG=true; in production the token goes out by e-mail.
    reset_token: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    success: bool = False
    message: str
