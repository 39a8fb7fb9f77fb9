"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and
dependencies do the work; these types only own the domain shape.

All three are frozen. A Principal is changed by building a new value with
dataclasses.replace() and handing it to CredentialStore.save(); an
AuthContext is built once per request and never mutated.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of roles. The stored record and every route gate use this enum."""

    student = "student"
    instructor = "instructor"
    admin = "admin"


@dataclass(frozen=True)
class Principal:
    """A user identity with its credential.

    hashed_password is the bcrypt output, never plaintext. It is None only on
    a Principal that has not been saved yet; CredentialStore.save() refuses to
    insert one without a new_password.

    reset_password_token holds the SHA-256 digest of an outstanding reset
    token (never the token itself). Both reset fields are cleared together
    when the token is consumed or found expired.
    """

    email: str
    name: str = ""
    role: Role = Role.student
    id: str | None = None
    hashed_password: str | None = None
    reset_password_token: str | None = None
    reset_password_expire: datetime | None = None
    last_active: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ResetToken:
    """A freshly minted reset token.

    plaintext goes to the requester out-of-band and is never stored.
    digest and expires_at are what the Principal record keeps.
    """

    plaintext: str
    digest: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthContext:
    """Authentication state of one request, attached at request.state.auth."""

    principal: Principal | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    @property
    def subject_id(self) -> str | None:
        return self.principal.id if self.principal is not None else None


ANONYMOUS = AuthContext()
