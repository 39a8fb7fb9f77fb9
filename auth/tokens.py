"""
auth/tokens.py -- Session token issue/verify and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. A token carries only sub (principal id), iat
       and exp -- role and profile data are always re-read from the store so
       a role change takes effect on the next request.

  Stateless: validity is a pure function of the token bytes, the signing key
       and the current time (read from the service's clock). There is no
       server-side session table and no revocation list. verify() therefore
       needs no locking and is safe under any number of concurrent requests.

  Two failure outcomes: ExpiredTokenError (genuine but stale -- "please log
       in again") and InvalidTokenError (anything else: tampered, wrong key,
       garbage, missing sub). The signature is checked before expiry, so a
       forged token can never be reported as merely expired.

  The signing key comes from Settings.secret_key, which is mandatory.
       Constructing the service with an empty key raises ConfigurationError.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import JWTError

from core.errors import ConfigurationError, ExpiredTokenError, InvalidTokenError

logger = logging.getLogger("coursegate.auth.tokens")

_ALGORITHM = "HS256"

SESSION_COOKIE_NAME = "token"
DEFAULT_SESSION_SECONDS = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionTokenService:
    """Signs and verifies session tokens with a fixed key and lifetime.

    Usage:
        service = SessionTokenService(settings.secret_key)
        token = service.issue(principal.id)
        subject_id = service.verify(token)

    clock is the single time source for both issue() (iat, exp) and verify()
    (the expiry check), so tests can move time forward through it.
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int = DEFAULT_SESSION_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not secret_key:
            raise ConfigurationError("A session signing key is required.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self._clock = clock

    def issue(self, subject_id: str) -> str:
        """Return a signed token for subject_id, valid for expire_seconds from now."""
        issued_at = self._clock()
        payload = {
            "sub": str(subject_id),
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the subject id encoded in a valid token.

        Raises:
            ExpiredTokenError: signature is valid but exp has passed.
            InvalidTokenError: any other decode or signature failure.
        """
        try:
            # exp is checked below against self._clock, not jose's wall clock.
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False, "require_exp": True},
            )
        except JWTError as exc:
            logger.debug("Rejected session token: %s", type(exc).__name__)
            raise InvalidTokenError() from exc

        expires_at = payload.get("exp")
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise InvalidTokenError()
        if expires_at < int(self._clock().timestamp()):
            logger.debug("Rejected session token: expired")
            raise ExpiredTokenError()

        subject_id = payload.get("sub")
        if not isinstance(subject_id, str) or not subject_id:
            raise InvalidTokenError()
        return subject_id


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(
    response, token: str, max_age: int = DEFAULT_SESSION_SECONDS, secure: bool = False
) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the token lifetime so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, httponly=True, samesite="strict")
