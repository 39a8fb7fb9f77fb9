"""
tests/test_tokens.py -- Unit tests for SessionTokenService and the session cookie.

Coverage:
  - issue then verify returns the original subject id
  - Claims: sub/iat/exp with a 24h lifetime by default
  - Expired token (by the service clock) -> ExpiredTokenError; other key / tampered / garbage -> InvalidTokenError
  - A token that is both forged and expired reports invalid, not expired
  - Missing exp, missing or non-string sub -> InvalidTokenError
  - Empty signing key -> ConfigurationError
  - Cookie flags: httpOnly, SameSite=strict, Max-Age=86400
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.responses import JSONResponse
from jose import jwt

from auth.tokens import SESSION_COOKIE_NAME, SessionTokenService, clear_session_cookie, set_session_cookie
from core.errors import ConfigurationError, ExpiredTokenError, InvalidTokenError, UnauthenticatedError

SECRET = "unit-test-secret-key-0123456789abcdef"
OTHER_SECRET = "another-secret-key-fedcba9876543210xyz"


def _clock_at(moment: datetime):
    return lambda: moment


@pytest.fixture
def service() -> SessionTokenService:
    return SessionTokenService(SECRET)


class TestIssueVerify:
    def test_round_trip(self, service: SessionTokenService) -> None:
        token = service.issue("abc123")
        assert service.verify(token) == "abc123"

    def test_claims_and_default_lifetime(self, service: SessionTokenService) -> None:
        claims = jwt.get_unverified_claims(service.issue("abc123"))
        assert claims["sub"] == "abc123"
        assert claims["exp"] - claims["iat"] == 24 * 60 * 60
        assert set(claims) == {"sub", "iat", "exp"}

    def test_verify_is_repeatable(self, service: SessionTokenService) -> None:
        """Verification has no side effects -- the same token verifies any number of times."""
        token = service.issue("abc123")
        assert [service.verify(token) for _ in range(3)] == ["abc123"] * 3

    def test_separate_instances_with_same_key_agree(self) -> None:
        token = SessionTokenService(SECRET).issue("abc123")
        assert SessionTokenService(SECRET).verify(token) == "abc123"


class TestVerifyFailures:
    def test_expired_token(self) -> None:
        two_days_ago = datetime.now(timezone.utc) - timedelta(days=2)
        token = SessionTokenService(SECRET, clock=_clock_at(two_days_ago)).issue("abc123")
        with pytest.raises(ExpiredTokenError) as exc_info:
            SessionTokenService(SECRET).verify(token)
        assert "expired" in exc_info.value.message.lower()
        assert exc_info.value.status_code == 401

    def test_expiry_follows_injected_clock(self) -> None:
        """issue() and verify() read the same clock, so advancing it drives expiry."""
        moments = [datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)]
        service = SessionTokenService(SECRET, expire_seconds=60, clock=lambda: moments[-1])
        token = service.issue("abc123")

        moments.append(moments[0] + timedelta(seconds=60))
        assert service.verify(token) == "abc123"

        moments.append(moments[0] + timedelta(seconds=61))
        with pytest.raises(ExpiredTokenError):
            service.verify(token)

    def test_missing_expiry(self, service: SessionTokenService) -> None:
        token = jwt.encode({"sub": "abc123"}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            service.verify(token)

    def test_wrong_key(self) -> None:
        token = SessionTokenService(OTHER_SECRET).issue("abc123")
        with pytest.raises(InvalidTokenError) as exc_info:
            SessionTokenService(SECRET).verify(token)
        assert "invalid" in exc_info.value.message.lower()

    def test_forged_and_expired_reports_invalid(self) -> None:
        two_days_ago = datetime.now(timezone.utc) - timedelta(days=2)
        token = SessionTokenService(OTHER_SECRET, clock=_clock_at(two_days_ago)).issue("abc123")
        with pytest.raises(InvalidTokenError):
            SessionTokenService(SECRET).verify(token)

    def test_tampered_payload(self, service: SessionTokenService) -> None:
        """Swap in another token's payload while keeping the original signature."""
        header, _payload, signature = service.issue("victim").split(".")
        _h, attacker_payload, _s = service.issue("attacker").split(".")
        with pytest.raises(InvalidTokenError):
            service.verify(f"{header}.{attacker_payload}.{signature}")

    @pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c", "eyJhbGciOiJIUzI1NiJ9.e30."])
    def test_garbage(self, service: SessionTokenService, garbage: str) -> None:
        with pytest.raises(InvalidTokenError):
            service.verify(garbage)

    def test_missing_subject(self, service: SessionTokenService) -> None:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        token = jwt.encode({"exp": exp}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            service.verify(token)

    def test_non_string_subject(self, service: SessionTokenService) -> None:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        token = jwt.encode({"sub": 42, "exp": exp}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            service.verify(token)

    def test_both_errors_are_unauthenticated(self) -> None:
        """The HTTP layer renders both as 401; only the message differs."""
        assert issubclass(ExpiredTokenError, UnauthenticatedError)
        assert issubclass(InvalidTokenError, UnauthenticatedError)
        assert ExpiredTokenError().message != InvalidTokenError().message


class TestConfiguration:
    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            SessionTokenService("")


class TestSessionCookie:
    def test_cookie_flags(self) -> None:
        resp = JSONResponse(content={})
        set_session_cookie(resp, "tok")
        header = resp.headers["set-cookie"]
        assert header.startswith(f"{SESSION_COOKIE_NAME}=tok")
        assert "HttpOnly" in header
        assert "samesite=strict" in header.lower()
        assert "Max-Age=86400" in header
        assert "Secure" not in header

    def test_secure_flag(self) -> None:
        resp = JSONResponse(content={})
        set_session_cookie(resp, "tok", secure=True)
        assert "Secure" in resp.headers["set-cookie"]

    def test_clear_cookie(self) -> None:
        resp = JSONResponse(content={})
        clear_session_cookie(resp)
        header = resp.headers["set-cookie"]
        assert header.startswith(f"{SESSION_COOKIE_NAME}=")
        assert "Max-Age=0" in header
