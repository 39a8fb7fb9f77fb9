"""
auth/reset.py -- One-time password-reset tokens.

Security design decisions:
  secrets.token_hex(20) gives 160 bits of entropy. Brute-forcing a live token
       inside its 10-minute window is computationally infeasible, so a fast
       deterministic digest (SHA-256) is enough -- bcrypt's slowness buys
       nothing for high-entropy secrets and would prevent a direct compare.

  Only the digest and expiry are stored on the Principal. The plaintext is
       handed back to the caller once, for out-of-band delivery.

  validate() compares digests with hmac.compare_digest (constant time).

  One-time use: complete_password_reset() writes the new credential and
       clears the digest and expiry with one conditional UPDATE that only
       matches while the checked digest is still stored. Two requests racing
       on the same token cannot both succeed. An expired token is also
       cleared when it is presented.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from auth.models import ResetToken
from auth.tokens import utcnow
from core.errors import ExpiredTokenError, InvalidTokenError

if TYPE_CHECKING:
    from auth.models import Principal
    from auth.store import CredentialStore

logger = logging.getLogger("coursegate.auth.reset")

DEFAULT_RESET_SECONDS = 10 * 60
_TOKEN_BYTES = 20

INVALID_RESET_MESSAGE = "Password reset token is invalid or has already been used."
EXPIRED_RESET_MESSAGE = "Password reset token has expired. Please request a new one."


class ResetTokenService:
    """Mints and checks reset tokens. Holds no state beyond its lifetime setting."""

    def __init__(self, expire_seconds: int = DEFAULT_RESET_SECONDS, clock: Callable[[], datetime] = utcnow) -> None:
        self.expire_seconds = expire_seconds
        self._clock = clock

    @staticmethod
    def digest(plaintext: str) -> str:
        """Return the SHA-256 hex digest stored in place of a reset token."""
        return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()

    def generate(self) -> ResetToken:
        plaintext = secrets.token_hex(_TOKEN_BYTES)
        return ResetToken(
            plaintext=plaintext,
            digest=self.digest(plaintext),
            expires_at=self._clock() + timedelta(seconds=self.expire_seconds),
        )

    def validate(self, presented: str, stored_digest: str | None, stored_expiry: datetime | None) -> bool:
        """Check a presented token against the stored digest and expiry.

        Returns False when no token is outstanding or the digest differs.
        Raises ExpiredTokenError when the digest matches but the expiry has
        passed, so callers can tell the user to request a new token.
        """
        if not presented or not stored_digest:
            return False
        if not hmac.compare_digest(self.digest(presented), stored_digest):
            return False
        if stored_expiry is None or self._clock() > stored_expiry:
            raise ExpiredTokenError(EXPIRED_RESET_MESSAGE)
        return True


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------


def issue_reset_token(store: CredentialStore, service: ResetTokenService, email: str) -> str | None:
    """Mint a reset token for the principal with this e-mail.

    Stores the digest and expiry, replacing any earlier outstanding token,
    and returns the plaintext. Returns None for an unknown e-mail so the
    caller can answer both cases identically.
    """
    principal = store.find_by_email(email)
    if principal is None:
        return None
    token = service.generate()
    if not store.set_reset_token(principal.id, token.digest, token.expires_at):
        return None
    logger.info("Password reset requested for principal %s", principal.id)
    return token.plaintext


def complete_password_reset(
    store: CredentialStore, service: ResetTokenService, email: str, token: str, new_password: str
) -> Principal:
    """Replace a principal's password using a reset token.

    The new password is hashed and the reset fields are cleared by
    store.consume_reset_token(), which only succeeds while the digest checked
    here is still stored. A concurrent request that consumed it first turns
    this one into InvalidTokenError. A rejected password (ValidationError)
    leaves the token outstanding.

    Raises:
        InvalidTokenError: unknown e-mail, wrong token, no token outstanding,
            or the token was consumed by a concurrent request.
        ExpiredTokenError: the token matched but expired; it is cleared.
        ValidationError: new_password is unacceptable.
    """
    principal = store.find_by_email(email)
    if principal is None:
        raise InvalidTokenError(INVALID_RESET_MESSAGE)
    digest = principal.reset_password_token
    try:
        valid = service.validate(token, digest, principal.reset_password_expire)
    except ExpiredTokenError:
        store.clear_reset_token(principal.id, digest)
        logger.info("Expired reset token cleared for principal %s", principal.id)
        raise
    if not valid:
        raise InvalidTokenError(INVALID_RESET_MESSAGE)

    updated = store.consume_reset_token(principal.id, digest, new_password)
    if updated is None:
        logger.warning("Reset token for principal %s was consumed concurrently", principal.id)
        raise InvalidTokenError(INVALID_RESET_MESSAGE)
    logger.info("Password reset completed for principal %s", principal.id)
    return updated
