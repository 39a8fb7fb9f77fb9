"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for CourseGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment.

Security notes:
  SECRET_KEY signs every session token. It is required in every mode -- there
  is no generated fallback, because a key that changes on restart silently
  logs everyone out and a hard-coded default is a forgery key. A missing or
  short key raises ConfigurationError and the app lifespan refuses to start.

  bcrypt_rounds below 10 is only accepted with DEBUG=true (test suites use 4
  to keep the run fast).

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError

logger = logging.getLogger("coursegate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'coursegate.db'}"

MIN_SECRET_KEY_LENGTH = 32
MIN_PRODUCTION_BCRYPT_ROUNDS = 10


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except secret_key has a default. Environment variable name
    mapping: field names are uppercased automatically.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured"; the validator rejects it.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions and credentials
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = Field(default=24 * 60 * 60, gt=0)
    reset_token_expire_seconds: int = Field(default=10 * 60, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required. Set SECRET_KEY in your environment or .env file."
            )
        if len(self.secret_key) < MIN_SECRET_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters.")
        if self.bcrypt_rounds < MIN_PRODUCTION_BCRYPT_ROUNDS and not self.debug:
            raise ValueError(
                f"BCRYPT_ROUNDS below {MIN_PRODUCTION_BCRYPT_ROUNDS} is only allowed with DEBUG=true."
            )
        if self.debug:
            logger.warning("DEBUG mode is on -- do not run this configuration in production.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Raises ConfigurationError (never a pydantic ValidationError) so the
    lifespan has a single fatal error type to let escape. The message lists
    which settings failed but never echoes their values.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    try:
        return Settings()
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration -- {problems}") from None
