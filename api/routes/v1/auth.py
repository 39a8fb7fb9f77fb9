"""
api/routes/v1/auth.py -- Authentication and credential REST endpoints.

Routes:
  POST /api/v1/auth/register          -- create a student account; sets session cookie
  POST /api/v1/auth/login             -- password login; sets session cookie
  POST /api/v1/auth/logout            -- clears cookie; 200
  GET  /api/v1/auth/me                -- current user info (requires auth)
  GET  /api/v1/auth/session           -- session check (optional auth)
  POST /api/v1/auth/password          -- change own password (requires auth)
  POST /api/v1/auth/forgot-password   -- mint a reset token (public)
  POST /api/v1/auth/reset-password    -- consume a reset token (public)
  GET  /api/v1/auth/users/{id}        -- look up any user (admin only)

Security:
  authenticate_principal() provides timing equalization -- use it, never inline.
  Login, register and reset responses carry Cache-Control: no-store.
  forgot-password answers identically whether or not the e-mail exists.

Handlers are plain def: FastAPI runs them in its thread pool, so bcrypt work
never blocks the event loop and still completes if the client disconnects.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    PasswordChangeRequest,
    PrincipalResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
)
from auth.dependencies import current_principal, optional_auth, require_auth, require_role
from auth.models import AuthContext, Principal, Role
from auth.passwords import PasswordHasher, authenticate_principal
from auth.reset import ResetTokenService, complete_password_reset, issue_reset_token
from auth.store import CredentialStore
from auth.tokens import SessionTokenService, clear_session_cookie, set_session_cookie
from core.errors import NotFoundError, UnauthenticatedError, ValidationError

# Auth policy:
# - POST /auth/register, /auth/login, /auth/logout:       public
# - POST /auth/forgot-password, /auth/reset-password:     public
# - GET  /auth/session:                                   optional_auth
# - GET  /auth/me, POST /auth/password:                   require_auth
# - GET  /auth/users/{id}:                                require_auth + require_role(admin)
router = APIRouter()

_FORGOT_MESSAGE = "If an account exists for that email, a reset link has been sent."


def _session_response(request: Request, principal: Principal, message: str, status_code: int = 200) -> JSONResponse:
    """Issue a session token for principal and return it as a cookie-bearing JSON response."""
    token_service: SessionTokenService = request.app.state.token_service
    settings = request.app.state.settings
    token = token_service.issue(principal.id)
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(message=message, user=PrincipalResponse.from_principal(principal)).model_dump(
            mode="json"
        ),
    )
    set_session_cookie(resp, token, max_age=settings.token_expire_seconds, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a student account and log it in. Duplicate e-mail -> 409."""
    store: CredentialStore = request.app.state.credential_store
    principal = store.save(
        Principal(email=body.email, name=body.name, role=Role.student),
        new_password=body.password,
    )
    return _session_response(request, principal, "Account created successfully.", status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with e-mail and password; set the session cookie.

    Returns the same error for an unknown e-mail and a wrong password to
    avoid leaking which e-mails are registered.
    """
    store: CredentialStore = request.app.state.credential_store
    hasher: PasswordHasher = request.app.state.password_hasher
    principal = authenticate_principal(store, hasher, body.email, body.password)
    if principal is None:
        raise UnauthenticatedError("Invalid email or password.")
    store.touch_last_active(principal.id)
    return _session_response(request, principal, f"Welcome back {principal.name}".strip() + ".")


@router.post("/auth/logout", response_model=MessageResponse)
def logout() -> JSONResponse:
    """Clear the session cookie. The token itself stays valid until it expires."""
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully.").model_dump())
    clear_session_cookie(resp)
    return resp


@router.post("/auth/forgot-password", response_model=ForgotPasswordResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> ForgotPasswordResponse:
    store: CredentialStore = request.app.state.credential_store
    reset_service: ResetTokenService = request.app.state.reset_service
    plaintext = issue_reset_token(store, reset_service, body.email)
    # E-mail delivery is not part of this service; the caller delivers the plaintext.
    echo = plaintext if request.app.state.settings.debug else None
    return ForgotPasswordResponse(message=_FORGOT_MESSAGE, reset_token=echo)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    """Set a new password with a reset token. The token is spent on success."""
    store: CredentialStore = request.app.state.credential_store
    reset_service: ResetTokenService = request.app.state.reset_service
    complete_password_reset(store, reset_service, body.email, body.token, body.password)
    resp = JSONResponse(content=MessageResponse(message="Password reset successfully. Please log in.").model_dump())
    clear_session_cookie(resp)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Session-aware endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/session", response_model=SessionResponse)
def session(context: AuthContext = Depends(optional_auth)) -> SessionResponse:
    if context.principal is None:
        return SessionResponse(authenticated=False)
    return SessionResponse(authenticated=True, user=PrincipalResponse.from_principal(context.principal))


@router.get("/auth/me", response_model=AuthResponse)
def me(principal: Principal = Depends(current_principal)) -> AuthResponse:
    return AuthResponse(message="Profile fetched successfully.", user=PrincipalResponse.from_principal(principal))


@router.post("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    principal: Principal = Depends(current_principal),
) -> MessageResponse:
    """Replace the caller's password after re-checking the current one."""
    store: CredentialStore = request.app.state.credential_store
    hasher: PasswordHasher = request.app.state.password_hasher
    if principal.hashed_password is None or not hasher.verify(body.current_password, principal.hashed_password):
        raise UnauthenticatedError("Current password is incorrect.")
    if body.current_password == body.new_password:
        raise ValidationError("New password must be different from the current password.")
    # Also clears any outstanding reset token; None means the credential changed underneath us.
    if store.change_password(principal.id, principal.hashed_password, body.new_password) is None:
        raise UnauthenticatedError("Current password is incorrect.")
    return MessageResponse(message="Password updated successfully.")


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.get(
    "/auth/users/{user_id}",
    response_model=PrincipalResponse,
    dependencies=[Depends(require_auth), Depends(require_role(Role.admin))],
)
def get_user(request: Request, user_id: str) -> PrincipalResponse:
    store: CredentialStore = request.app.state.credential_store
    principal = store.find_by_id(user_id)
    if principal is None:
        raise NotFoundError("User not found")
    return PrincipalResponse.from_principal(principal)
