"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the OASIS bridge happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. oasis_admin_user -> OASIS_ADMIN_USER).

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY logic. Dev mode
      generates a key with a warning, production mode refuses to start without
      one.

Registry settings:
  OASIS_API_USER_ENDPOINT, OASIS_ADMIN_USER and OASIS_ADMIN_PASSWORD are
  required for any member login. They are NOT enforced by the validator so the
  settings object can be built in tests and tooling; the API lifespan calls
  missing_registry_settings() at startup and the registry client re-checks
  before every call.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or registry/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("oasisbridge.config")


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
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    # Host headers accepted by TrustedHostMiddleware. JSON list in the env var.
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # OASIS registry
    # ------------------------------------------------------------------

    # Base URL; the identifier and secret are appended as path segments.
    oasis_api_user_endpoint: str = ""
    oasis_admin_user: str = ""
    oasis_admin_password: str = ""
    oasis_timeout: float = 30.0
    oasis_connect_timeout: float = 10.0
    # Public status page shown to users when the registry is unreachable.
    oasis_service_url: str = ""

    # ------------------------------------------------------------------
    # Member profile / logout redirects
    # ------------------------------------------------------------------

    oasis_token_login_url: str = ""
    oasis_member_profile_url_en: str = ""
    oasis_member_profile_url_fr: str = ""
    member_logout_redirect: str = "/"
    default_logout_redirect: str = "/"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    # ------------------------------------------------------------------
    # Registry helpers
    # ------------------------------------------------------------------

    def missing_registry_settings(self) -> list[str]:
        """Return the env var names of required registry settings that are unset."""
        missing = []
        if not self.oasis_api_user_endpoint:
            missing.append("OASIS_API_USER_ENDPOINT")
        if not self.oasis_admin_user:
            missing.append("OASIS_ADMIN_USER")
        if not self.oasis_admin_password:
            missing.append("OASIS_ADMIN_PASSWORD")
        return missing

    @property
    def registry_configured(self) -> bool:
        return not self.missing_registry_settings()

    def member_profile_url(self, langcode: str) -> str:
        """Pick the external member profile path for a language code (fr or en)."""
        if langcode == "fr":
            return self.oasis_member_profile_url_fr
        return self.oasis_member_profile_url_en


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
