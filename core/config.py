"""
core/config.py -- Every tunable of the rental portal, read from env / .env.

Nothing else in the codebase touches os.environ; modules call get_settings().
Field names map one-to-one onto env vars (access_token_expire_seconds ->
ACCESS_TOKEN_EXPIRE_SECONDS); pydantic-settings does the coercion.

get_settings() is lru_cached, so the first call fixes the configuration for
the life of the process. Tests that need different values build Settings(...)
directly instead of going through the cache.

Startup policy (validate_secrets):
  [M6] SECRET_KEY under 32 characters is rejected in every mode. It signs
       every access and refresh token; a weak key means forgeable sessions.

  [M7] Production (DEBUG unset) refuses to start without SECRET_KEY or
       DIRECTORY_API_KEY. Dev mode generates a throwaway signing key and only
       warns about the directory key.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or cache/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("rentalportal.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 24 * 60 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60
    # Directory lookups are cached briefly; individual entries may override.
    cache_ttl_seconds: int = 5 * 60
    # Background sweep: cache entries, expired magic links, stale blacklist.
    cleanup_interval_seconds: int = 60

    # ------------------------------------------------------------------
    # Booking directory
    # ------------------------------------------------------------------

    directory_api_url: str = "https://canaryride.booqable.com/api/4/"
    directory_api_key: str = ""
    directory_timeout_seconds: float = 30.0

    # ------------------------------------------------------------------
    # Email (empty smtp_host = log instead of sending)
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3000"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    from_email: str = "noreply@canaryride.com"
    from_name: str = "Canary Ride"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    magic_link_rate_limit: str = "5/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce SECRET_KEY and DIRECTORY_API_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random signing key with a
            warning. Sessions will not survive restart -- they never do, the
            session store is in-memory.

        Production mode: refuse to start without SECRET_KEY or without a
            directory API key (every login would fail with a 500).

        Both modes: reject signing keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Issued tokens die with the process.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not self.directory_api_key:
            if self.debug:
                logger.warning("WARNING: DIRECTORY_API_KEY is not set. Directory calls will be rejected upstream.")
            else:
                raise ValueError("DIRECTORY_API_KEY is required in production mode.")
        if self.access_token_expire_seconds <= 0 or self.refresh_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
