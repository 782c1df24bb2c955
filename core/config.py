"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the credential service happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. auth_token_signing_key -> AUTH_TOKEN_SIGNING_KEY).

  @model_validator(mode="after"): Cross-field validation once all fields are
      resolved. The service fails fast at startup instead of checking ad hoc
      at each call site.

Security notes:
  [M6] AUTH_TOKEN_SIGNING_KEY shorter than 32 bytes is rejected outright.
       HMAC-SHA256 signing relies on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing signing key is
       a hard startup failure. In debug mode a random key is generated with a
       warning; tokens then do not survive a restart.

Fixed lifetimes (bearer token 1 h, verification token 24 h) are constants in
auth/tokens.py and auth/verification.py, not settings.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("agbilling.config")

_MIN_SIGNING_KEY_BYTES = 32
_KNOWN_PASSWORD_ALGORITHMS = ("PBKDF2-SHA256-100000", "BCRYPT-12")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (given DEBUG=true).
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

    # ------------------------------------------------------------------
    # Bearer tokens
    # ------------------------------------------------------------------

    # "" means unset. validate_signing_key() replaces it with a dev key or
    # refuses to start.
    auth_token_signing_key: str = ""
    # Optional. Written into and checked on tokens only when non-empty.
    auth_token_issuer: str = ""
    auth_token_audience: str = ""

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # Empty = SQLite file next to auth/store.py.
    database_url: str = ""
    # Lock wait (SQLite) / pool checkout (other engines), seconds.
    store_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Verification workflow
    # ------------------------------------------------------------------

    verify_email_base_url: str = "http://localhost:8000"
    # One sweep per hour by default.
    sweep_interval_seconds: int = 3600
    password_algorithm: str = "PBKDF2-SHA256-100000"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_key(self) -> "Settings":
        """Enforce the signing-key policy [M6][M7] and sanity-check the rest."""
        if not self.auth_token_signing_key:
            if self.debug:
                self.auth_token_signing_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated AUTH_TOKEN_SIGNING_KEY. " "Tokens will not survive a restart."
                )
            else:
                raise ValueError(
                    "AUTH_TOKEN_SIGNING_KEY is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.auth_token_signing_key.encode("utf-8")) < _MIN_SIGNING_KEY_BYTES:
            raise ValueError(f"AUTH_TOKEN_SIGNING_KEY must be at least {_MIN_SIGNING_KEY_BYTES} bytes.")
        if self.password_algorithm.upper() not in _KNOWN_PASSWORD_ALGORITHMS:
            raise ValueError(f"PASSWORD_ALGORITHM must be one of {', '.join(_KNOWN_PASSWORD_ALGORITHMS)}.")
        if self.sweep_interval_seconds <= 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
