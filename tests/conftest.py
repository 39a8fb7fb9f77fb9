"""
tests/conftest.py -- Shared test fixtures for CourseGate.

This module provides:
  - hasher: PasswordHasher at the minimum bcrypt cost (fast tests)
  - store: an isolated in-memory SqlCredentialStore per test
  - api_client: TestClient running the real app lifespan against an in-memory DB
  - make_principal: factory that saves a principal with a unique e-mail

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

SECRET_KEY, DEBUG, BCRYPT_ROUNDS and DATABASE_URL must be set before any
api/ import so the lifespan's get_settings() sees them.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator

# CRITICAL: set before importing the app. SECRET_KEY has no fallback.
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:test_api?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Principal, Role
from auth.passwords import PasswordHasher
from auth.store import SqlCredentialStore

TEST_PASSWORD = "correct-horse-battery"


def _memory_db_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def store(hasher: PasswordHasher) -> Generator[SqlCredentialStore, None, None]:
    """A fresh, empty credential store for one test."""
    credential_store = SqlCredentialStore(_memory_db_url("test_store"), hasher=hasher)
    yield credential_store
    credential_store.close()


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient whose lifespan built the real services.

    Services are reachable through client.app.state (credential_store,
    token_service, reset_service, password_hasher, settings).
    """
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture(autouse=True)
def _fresh_cookie_jar(request: pytest.FixtureRequest) -> None:
    """Start every API test without a session cookie left over from a previous login."""
    if "api_client" in request.fixturenames:
        request.getfixturevalue("api_client").cookies.clear()


@pytest.fixture
def make_principal() -> Callable[..., Principal]:
    """Return a factory that saves a principal into a given store.

    Usage:
        principal = make_principal(store, role=Role.admin)
    """

    def _make(
        credential_store: SqlCredentialStore, role: Role = Role.student, password: str = TEST_PASSWORD
    ) -> Principal:
        email = f"{role.value}-{uuid.uuid4().hex[:8]}@example.com"
        return credential_store.save(Principal(email=email, name=role.value.title(), role=role), new_password=password)

    return _make
