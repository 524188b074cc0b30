"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatehouse happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. SECRET_KEY presence, rate-limit syntax and
      the Secure-cookie default are all decided here, once, at startup.

Security notes:
  SECRET_KEY is required in every mode. There is no generated fallback: a
  missing key is a fatal startup error. Keys shorter than 32 characters are
  rejected because HS256 session signing relies on key entropy.

  Rotating SECRET_KEY invalidates every outstanding session token. That is an
  accepted limitation of stateless sessions, not something to patch around.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or throttle/.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from limits import parse
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatehouse.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'gatehouse_accounts.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Everything except SECRET_KEY has a default so a deployment only has to
    supply the key. The model_validator enforces startup-safety rules.
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
    # Empty string is the sentinel for "not configured"; the validator raises.
    secret_key: str = ""
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # None means "decide from DEBUG": Secure outside local development.
    secure_cookies: Optional[bool] = None
    session_expire_seconds: int = Field(default=24 * 3600, gt=0)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=10, ge=4, le=31)
    min_password_length: int = Field(default=8, ge=1, le=72)

    # ------------------------------------------------------------------
    # Rate limiting (limits notation: "<amount>/<multiple> <granularity>")
    # ------------------------------------------------------------------

    sign_in_rate_limit: str = "5/15 minutes"
    sign_up_rate_limit: str = "1/15 minutes"
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # Backing stores
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    backend_timeout_seconds: float = Field(default=5.0, gt=0)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_startup_policy(self) -> "Settings":
        """Refuse to start with an unsafe or unusable configuration.

        - SECRET_KEY must be present and at least 32 characters.
        - Both rate-limit strings must parse as a single limits expression.
        - secure_cookies defaults to True unless DEBUG is on.
        """
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required. " "Set SECRET_KEY in your environment or .env file before starting Gatehouse."
            )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        for name in ("sign_in_rate_limit", "sign_up_rate_limit"):
            value = getattr(self, name)
            try:
                parse(value)
            except ValueError as exc:
                raise ValueError(f"{name.upper()} is not a valid rate limit: {value!r}") from exc

        if self.secure_cookies is None:
            self.secure_cookies = not self.debug
        if not self.secure_cookies:
            logger.warning("Session cookies are not marked Secure. Only acceptable for local development.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
