"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for MoeAuth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). A few fields also accept the AUTH_*
      names used by existing deployments (AUTH_SECRET, AUTH_GITHUB_ID,
      AUTH_GITHUB_SECRET) through AliasChoices.

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY handling.
      Dev mode generates a key with a warning, production mode refuses to
      start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. It signs both the
  session JWT and the OAuth state cookie.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("moeauth.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = Field(default="", validation_alias=AliasChoices("SECRET_KEY", "AUTH_SECRET"))
    database_url: str = ""
    locale: str = "en"

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    # 30 days: a mail client session should survive the browser being closed.
    token_expire_seconds: int = 30 * 24 * 3600

    # ------------------------------------------------------------------
    # OAuth (empty string means the provider is disabled)
    # ------------------------------------------------------------------

    github_client_id: str = Field(default="", validation_alias=AliasChoices("GITHUB_CLIENT_ID", "AUTH_GITHUB_ID"))
    github_client_secret: str = Field(
        default="", validation_alias=AliasChoices("GITHUB_CLIENT_SECRET", "AUTH_GITHUB_SECRET")
    )

    # ------------------------------------------------------------------
    # Roles and registration
    # ------------------------------------------------------------------

    # Fallback when the site_config table has no DEFAULT_ROLE row.
    default_role: str = "civilian"
    self_registration_enabled: bool = True

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY (or AUTH_SECRET) in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.locale not in ("en", "zh"):
            raise ValueError(f"LOCALE must be 'en' or 'zh', got {self.locale!r}.")
        return self

    @property
    def github_enabled(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
