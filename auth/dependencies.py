"""
auth/dependencies.py -- FastAPI Depends() stages for authentication and roles.

The session token travels in the "token" cookie set at login. The
Authorization header is not consulted.

require_auth() is the hard variant: any failure raises an AppError that the
api/ exception handler renders as a JSON error (401, or 404 when the token
is genuine but its principal no longer exists).
optional_auth() is the soft variant: every auth failure becomes an
anonymous context and the request proceeds.
require_role() gates on the role of the principal a previous stage attached,
and denies when nothing was attached.

Each stage stores its result as an immutable AuthContext on
request.state.auth; get_auth_context() is the accessor for handlers.

Services are read from app.state (credential_store, token_service), which
the api/ lifespan populates.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from auth.models import ANONYMOUS, AuthContext, Principal, Role
from auth.tokens import SESSION_COOKIE_NAME
from core.errors import AppError, ForbiddenError, NotFoundError, UnauthenticatedError

logger = logging.getLogger("coursegate.auth.dependencies")


def _authenticate(request: Request) -> AuthContext:
    token: str | None = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        raise UnauthenticatedError("You are not logged in. Please log in to get access.")

    subject_id = request.app.state.token_service.verify(token)

    store = request.app.state.credential_store
    principal = store.find_by_id(subject_id)
    if principal is None:
        raise NotFoundError("User not found")

    try:
        store.touch_last_active(principal.id)
    except SQLAlchemyError:
        # Activity stamp is best-effort; never fail an authenticated request over it.
        logger.warning("Could not update last_active for principal %s", principal.id)

    return AuthContext(principal=principal)


def require_auth(request: Request) -> AuthContext:
    """Require a valid session. Raises 401 (or 404 for a vanished principal).

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(ctx: AuthContext = Depends(require_auth)): ...
    """
    context = _authenticate(request)
    request.state.auth = context
    return context


def optional_auth(request: Request) -> AuthContext:
    """Attach the principal when a valid session exists; never raises for auth failures."""
    try:
        context = _authenticate(request)
    except AppError as exc:
        logger.debug("Optional auth fell back to anonymous: %s", type(exc).__name__)
        context = ANONYMOUS
    request.state.auth = context
    return context


def get_auth_context(request: Request) -> AuthContext:
    """Return the context attached by an earlier stage, or the anonymous context."""
    return getattr(request.state, "auth", ANONYMOUS)


def require_role(*roles: Role | str) -> Callable[[Request], AuthContext]:
    """Build a stage that allows only principals whose role is in roles.

    Must run after require_auth. With no attached principal the stage denies
    (403) rather than letting the request through.

    Use as a FastAPI dependency:
        @router.get("/admin", dependencies=[Depends(require_auth), Depends(require_role(Role.admin))])

    Unknown role names raise ValueError when the stage is built, i.e. at import.
    """
    allowed = frozenset(Role(r) for r in roles)

    def _check_role(request: Request) -> AuthContext:
        context = get_auth_context(request)
        if context.principal is None:
            logger.warning("Role gate reached without an authenticated principal on %s", request.url.path)
            raise ForbiddenError()
        if context.principal.role not in allowed:
            raise ForbiddenError()
        return context

    return _check_role


def current_principal(context: AuthContext = Depends(require_auth)) -> Principal:
    """Shortcut dependency: require a session and return its principal."""
    if context.principal is None:
        raise UnauthenticatedError()
    return context.principal
