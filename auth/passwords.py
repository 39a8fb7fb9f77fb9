"""
auth/passwords.py -- Password hashing and the timing-safe login check.

Security design decisions:
  bcrypt, used directly (no passlib wrapper). Cost factor 12 by default; the
       per-hash random salt is embedded in the output so the stored string is
       self-describing and verification needs nothing else.

  bcrypt only reads the first 72 bytes of input, and bcrypt 5.x refuses longer
       input outright. hash() rejects such passwords with ValidationError so a
       user never ends up with a credential whose tail is silently ignored.

  verify() delegates the comparison to bcrypt.checkpw, which compares in
       constant time. A mismatch returns False; only a malformed stored hash
       raises (CredentialHashError), because that is corruption, not a wrong
       password.

  authenticate_principal() runs bcrypt even for unknown e-mails, against a
       dummy hash, so response time does not reveal which e-mails exist.

Nothing in this module logs a password or a hash.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from functools import cached_property
from typing import TYPE_CHECKING

import bcrypt

from core.errors import CredentialHashError, ValidationError

if TYPE_CHECKING:
    from auth.models import Principal
    from auth.store import CredentialStore

DEFAULT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 8
_BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Salted adaptive hashing of user passwords.

    Stateless beyond its fixed cost settings, so one instance is shared by
    every request thread.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS, min_length: int = MIN_PASSWORD_LENGTH) -> None:
        self.rounds = rounds
        self.min_length = min_length

    def hash(self, plaintext: str) -> str:
        """Return the bcrypt hash of plaintext.

        Raises ValidationError if the password is empty, shorter than
        min_length characters, or longer than 72 bytes once UTF-8 encoded.
        """
        if not plaintext:
            raise ValidationError("Password is required.")
        if len(plaintext) < self.min_length:
            raise ValidationError(f"Password must be at least {self.min_length} characters.")
        encoded = plaintext.encode("utf-8")
        if len(encoded) > _BCRYPT_MAX_BYTES:
            raise ValidationError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes.")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return True if plaintext matches the stored bcrypt hash."""
        encoded = (plaintext or "").encode("utf-8")
        if not encoded or len(encoded) > _BCRYPT_MAX_BYTES:
            # hash() never accepts these, so nothing stored can match them.
            return False
        try:
            return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
        except ValueError as exc:
            raise CredentialHashError() from exc

    @cached_property
    def dummy_hash(self) -> str:
        """Hash at the same cost as real credentials, used for timing equalization."""
        return bcrypt.hashpw(b"coursegate_timing_dummy", bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")


def authenticate_principal(
    store: CredentialStore, hasher: PasswordHasher, email: str, password: str
) -> Principal | None:
    """Check an e-mail/password login with timing equalization.

    Always runs bcrypt whether or not the e-mail exists:
    - Unknown e-mail: bcrypt runs against the dummy hash (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the Principal on success, None on any mismatch.
    """
    principal = store.find_by_email(email)
    if principal is None or principal.hashed_password is None:
        hasher.verify(password, hasher.dummy_hash)
        return None
    if not hasher.verify(password, principal.hashed_password):
        return None
    return principal
