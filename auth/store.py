"""
auth/store.py -- Persistence of Principals and their credentials.

CredentialStore is the interface the auth core consumes: read by id, read
by e-mail, upsert, a best-effort activity stamp, and conditional writes for
credentials and reset tokens. SqlCredentialStore is the SQLAlchemy Core
implementation.

Pattern: Repository + Data Mapper. SqlCredentialStore is the repository;
_row_to_principal is the mapper. Route and dependency code never touches SQL.

Credential re-hash rule:
  save() hashes a password only when the caller passes new_password. A
  Principal read from the store and saved back unchanged keeps its stored
  hash byte-for-byte, so an already-hashed value can never be hashed twice.

Concurrency:
  Every method is a single statement or a single short transaction. The
  store relies on the database's per-row atomicity and holds no locks of
  its own. Credential and reset-token writes are compare-and-set UPDATEs
  (WHERE id = ... AND <expected column value>), so of two requests racing
  on the same reset token or current password exactly one matches a row.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Principal, Role
from auth.passwords import PasswordHasher
from core.errors import ConflictError, ValidationError

logger = logging.getLogger("coursegate.auth.store")

# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class CredentialStore(Protocol):
    def find_by_id(self, principal_id: str) -> Principal | None: ...

    def find_by_email(self, email: str) -> Principal | None: ...

    def save(self, principal: Principal, *, new_password: str | None = None) -> Principal: ...

    def touch_last_active(self, principal_id: str) -> None: ...

    def delete(self, principal_id: str) -> bool: ...

    def set_reset_token(self, principal_id: str, digest: str, expires_at: datetime) -> bool: ...

    def consume_reset_token(self, principal_id: str, digest: str, new_password: str) -> Principal | None: ...

    def clear_reset_token(self, principal_id: str, digest: str) -> bool: ...

    def change_password(self, principal_id: str, current_hash: str, new_password: str) -> Principal | None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("email", String(255), nullable=False, unique=True),  # stored lowercased
    Column("name", String(50), nullable=False, server_default=""),
    Column("role", String(20), nullable=False, server_default=Role.student.value),
    Column("hashed_password", Text, nullable=False),
    Column("reset_password_token", String(64)),  # SHA-256 hex digest, never the token
    Column("reset_password_expire", String(32)),
    Column("last_active", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a concurrent write."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlCredentialStore:
    """SQLAlchemy Core implementation of CredentialStore.

    Usage:
        store = SqlCredentialStore("sqlite:///coursegate.db", hasher=PasswordHasher())
        student = store.save(Principal(email="a@example.com", name="Ada"), new_password="s3cret-pass")
        same = store.find_by_email("A@example.com")
        store.close()
    """

    def __init__(self, db_url: str, hasher: PasswordHasher) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._hasher = hasher

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, principal_id: str) -> Principal | None:
        """Look up a principal by id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == principal_id)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def find_by_email(self, email: str) -> Principal | None:
        """Look up a principal by e-mail, case-insensitively. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_principal(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, principal: Principal, *, new_password: str | None = None) -> Principal:
        """Insert or update a principal and return the stored record.

        new_password is the explicit "credential changed" signal: when given,
        it is validated and hashed before anything is written. Without it the
        stored hash is written back as-is.

        Raises:
            ValidationError: new_password is unacceptable, or a new principal
                has no credential at all.
            ConflictError: another principal already uses the e-mail.
        """
        hashed_password = principal.hashed_password
        if new_password is not None:
            hashed_password = self._hasher.hash(new_password)
        if hashed_password is None:
            raise ValidationError("Password is required.")

        now = _now()
        principal_id = principal.id or uuid.uuid4().hex
        values = {
            "email": normalize_email(principal.email),
            "name": principal.name,
            "role": Role(principal.role).value,
            "hashed_password": hashed_password,
            "reset_password_token": principal.reset_password_token,
            "reset_password_expire": _to_iso(principal.reset_password_expire),
            "last_active": _to_iso(principal.last_active or now),
            "updated_at": now.isoformat(),
        }
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.update().where(_users.c.id == principal_id).values(**values))
                if result.rowcount == 0:
                    conn.execute(
                        _users.insert().values(id=principal_id, created_at=_to_iso(principal.created_at or now), **values)
                    )
                    logger.info("Created principal %s (role=%s)", principal_id, values["role"])
        except IntegrityError as exc:
            raise ConflictError("A user with that email already exists.") from exc

        if new_password is not None:
            logger.info("Credential updated for principal %s", principal_id)
        stored = self.find_by_id(principal_id)
        # Only reachable if a concurrent delete landed between the write and the read.
        return stored or replace(principal, id=principal_id, hashed_password=hashed_password)

    def touch_last_active(self, principal_id: str) -> None:
        """Stamp last_active with the current UTC time.

        A bare single-column UPDATE: no validation, no read-back. Callers treat
        it as best-effort.
        """
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == principal_id).values(last_active=_now().isoformat()))

    def delete(self, principal_id: str) -> bool:
        """Permanently delete a principal. Returns True if a row was removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == principal_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Credential and reset-token writes (compare-and-set)
    # ------------------------------------------------------------------

    def set_reset_token(self, principal_id: str, digest: str, expires_at: datetime) -> bool:
        """Store a reset digest and expiry, replacing any outstanding token.

        Touches only the two reset columns. Returns False if the principal is gone.
        """
        return self._update_where(
            principal_id,
            None,
            reset_password_token=digest,
            reset_password_expire=_to_iso(expires_at),
        )

    def consume_reset_token(self, principal_id: str, digest: str, new_password: str) -> Principal | None:
        """Write new_password and clear the reset fields, if digest is still outstanding.

        Returns the updated principal, or None when the stored digest no longer
        equals digest (already consumed, replaced or cleared).

        Raises:
            ValidationError: new_password is unacceptable; nothing is written.
        """
        hashed_password = self._hasher.hash(new_password)
        consumed = self._update_where(
            principal_id,
            _users.c.reset_password_token == digest,
            hashed_password=hashed_password,
            reset_password_token=None,
            reset_password_expire=None,
        )
        if not consumed:
            return None
        logger.info("Credential updated for principal %s", principal_id)
        return self.find_by_id(principal_id)

    def clear_reset_token(self, principal_id: str, digest: str) -> bool:
        """Clear the reset fields if digest is still the outstanding token."""
        return self._update_where(
            principal_id,
            _users.c.reset_password_token == digest,
            reset_password_token=None,
            reset_password_expire=None,
        )

    def change_password(self, principal_id: str, current_hash: str, new_password: str) -> Principal | None:
        """Replace the credential if the stored hash is still current_hash.

        Any outstanding reset token is cleared in the same UPDATE. Returns None
        when the credential changed since current_hash was read.

        Raises:
            ValidationError: new_password is unacceptable; nothing is written.
        """
        hashed_password = self._hasher.hash(new_password)
        changed = self._update_where(
            principal_id,
            _users.c.hashed_password == current_hash,
            hashed_password=hashed_password,
            reset_password_token=None,
            reset_password_expire=None,
        )
        if not changed:
            return None
        logger.info("Credential updated for principal %s", principal_id)
        return self.find_by_id(principal_id)

    def _update_where(self, principal_id: str, condition, **values) -> bool:
        stmt = _users.update().where(_users.c.id == principal_id)
        if condition is not None:
            stmt = stmt.where(condition)
        with self.engine.begin() as conn:
            result = conn.execute(stmt.values(updated_at=_now().isoformat(), **values))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        email=row.email,
        name=row.name,
        role=Role(row.role),
        hashed_password=row.hashed_password,
        reset_password_token=row.reset_password_token,
        reset_password_expire=_from_iso(row.reset_password_expire),
        last_active=_from_iso(row.last_active),
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )
