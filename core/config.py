"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for Gatekeeper happen here. No module should
call os.getenv() or os.environ.get() directly -- entry points call
get_settings() and hand the result to AuthConfig.from_settings(). The
authentication core itself only ever sees the resulting AuthConfig.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to GATEKEEPER_-prefixed env
      var names (e.g. bcrypt_rounds -> GATEKEEPER_BCRYPT_ROUNDS). Structured
      fields such as authorization_rules are read as JSON.

  @model_validator(mode="after"): Rejects values that would leave the core
      unusable (session cap below 1, bcrypt cost out of range) before any
      component is built.

Layer rule: core/ is the kernel. This module may not import from auth/ or main.py.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatekeeper.config")


class RuleSetting(BaseModel):
    """One entry of the configured rule table.

    Example (JSON):
        {"patterns": ["/my/**"], "access": "has_any_role", "roles": ["ADMIN", "USER"]}
    """

    patterns: list[str]
    access: Literal["permit_all", "authenticated", "has_any_role"]
    roles: list[str] = Field(default_factory=list)


def _default_rule_settings() -> list[RuleSetting]:
    return [
        RuleSetting(patterns=["/", "/login", "/loginProc", "/join", "/joinProc"], access="permit_all"),
        RuleSetting(patterns=["/admin"], access="has_any_role", roles=["ADMIN"]),
        RuleSetting(patterns=["/my/**"], access="has_any_role", roles=["ADMIN", "USER"]),
    ]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() works in tests without a .env file.
    The defaults reproduce the stock demo setup: one session per user with new
    logins blocked, hierarchy C > B > A, and the standard rule table.
    """

    model_config = SettingsConfigDict(
        env_prefix="GATEKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # Empty string means "use the packaged default SQLite file".
    database_url: str = ""
    # Seed user1/user2 into an in-memory store instead of using the database.
    in_memory_users: bool = False

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 10

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    max_concurrent_sessions: int = 1
    block_new_on_exceed: bool = True
    # 0 disables idle expiry.
    session_timeout_seconds: int = 1800

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    role_hierarchy: str = "C > B\nB > A"
    authorization_rules: list[RuleSetting] = Field(default_factory=_default_rule_settings)
    default_access: Literal["authenticated", "permit_all"] = "authenticated"

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Refuse settings the authentication core could never start with."""
        if self.max_concurrent_sessions < 1:
            raise ValueError("GATEKEEPER_MAX_CONCURRENT_SESSIONS must be at least 1.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("GATEKEEPER_BCRYPT_ROUNDS must be between 4 and 31.")
        if self.session_timeout_seconds < 0:
            raise ValueError("GATEKEEPER_SESSION_TIMEOUT_SECONDS cannot be negative.")
        if self.bcrypt_rounds < 10:
            logger.warning("bcrypt cost %d is below the recommended minimum of 10.", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
