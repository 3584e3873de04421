"""Application settings using Pydantic BaseSettings."""

import os
import secrets
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ACCESS_TIER_NAMES = {"private", "visible", "accessible", "editing", "managing"}


def _get_default_db_path() -> str:
    """Get absolute path to default SQLite database."""
    # isahub/config/ -> isahub/
    config_dir = os.path.dirname(os.path.abspath(__file__))
    package_dir = os.path.dirname(config_dir)
    db_path = os.path.join(package_dir, "data", "isahub.db")
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    environment: str = Field(default="development")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    # Used for self links in JSON-API documents and research object manifests.
    site_base_url: str = Field(default="")

    # Security
    secret_key: str = Field(default_factory=lambda: secrets.token_urlsafe(64))
    cors_origins: str = Field(default="http://localhost:3000")
    max_request_bytes: int = Field(default=1048576)

    # Authentication
    session_cookie_name: str = Field(default="isahub_session")
    session_ttl_seconds: int = Field(default=604800)
    cookie_secure: bool = Field(default=False)
    cookie_samesite: str = Field(default="lax")
    cookie_domain: str = Field(default="")
    csrf_cookie_name: str = Field(default="isahub_csrf")
    csrf_header_name: str = Field(default="X-CSRF-Token")

    # Bootstrap admin (startup-only, env-driven)
    bootstrap_admin_enabled: bool = Field(default=False)
    bootstrap_admin_username: str = Field(default="")
    bootstrap_admin_email: str = Field(default="")
    bootstrap_admin_password: str = Field(default="")

    # Database
    database_url: str = Field(default_factory=_get_default_db_path)
    database_url_postgres: str = Field(default="")

    @property
    def effective_database_url(self) -> str:
        """Get the effective database URL (Postgres takes precedence if set)."""
        return self.database_url_postgres or self.database_url

    # Publishing
    # Access tiers that count as "published" (externally visible). Moving the
    # public tier from outside this group into it asks gatekeepers for approval;
    # moving between two tiers of the group does not.
    published_access_tiers: str = Field(default="visible,accessible,editing,managing")
    # Hold the requested tier until a gatekeeper approves it.
    publish_requires_approval: bool = Field(default=True)

    # Notifications
    notifications_from_address: str = Field(default="no-reply@isahub.local")
    # "log" delivers queued notifications through the logger, "none" leaves them queued.
    notification_delivery: str = Field(default="log")

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def published_access_tiers_list(self) -> List[str]:
        if not self.published_access_tiers:
            return []
        return [
            t.strip().lower()
            for t in self.published_access_tiers.split(",")
            if t.strip()
        ]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment.lower() == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.environment.lower() == "test"

    @property
    def docs_url(self) -> str | None:
        """Return docs URL outside production, else None."""
        return None if self.is_production else "/docs"

    @property
    def cookie_samesite_header(self) -> str:
        """Return SameSite value for HTTP header (capitalized for browser compatibility)."""
        if self.cookie_samesite == "none":
            return "None"
        return self.cookie_samesite.capitalize()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("cookie_samesite")
    @classmethod
    def validate_cookie_samesite(cls, v: str) -> str:
        """Normalize + validate SameSite cookie attribute."""
        vv = (v or "").strip().lower()
        if vv not in {"lax", "strict", "none"}:
            raise ValueError("COOKIE_SAMESITE must be one of: lax, strict, none")
        return vv

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production", "test"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production, test")
        return vv

    @field_validator("notification_delivery")
    @classmethod
    def validate_notification_delivery(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"log", "none"}:
            raise ValueError("NOTIFICATION_DELIVERY must be one of: log, none")
        return vv

    @model_validator(mode="after")
    def validate_cross_field_constraints(self) -> "Settings":
        # SameSite=None requires Secure=true.
        if self.cookie_samesite == "none" and not self.cookie_secure:
            raise ValueError("COOKIE_SECURE must be true when COOKIE_SAMESITE=none")

        unknown = [t for t in self.published_access_tiers_list if t not in _ACCESS_TIER_NAMES]
        if unknown:
            raise ValueError(f"PUBLISHED_ACCESS_TIERS contains unknown tiers: {unknown}")
        if "private" in self.published_access_tiers_list:
            raise ValueError("PUBLISHED_ACCESS_TIERS must not include private")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
