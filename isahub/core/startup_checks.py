"""Startup configuration checks.

Production deployments must not run with local-only defaults. All
violations are collected before failing so an operator sees them at once.
"""

import logging
from typing import List

from isahub.config import Settings

logger = logging.getLogger(__name__)


class ProductionConfigError(Exception):
    """Raised when production configuration fails validation."""


def validate_production_settings(settings: Settings) -> List[str]:
    """Return a list of production configuration violations (empty if valid)."""
    errors: List[str] = []

    if not settings.cookie_secure:
        errors.append("COOKIE_SECURE must be true in production for secure cookies")

    if "*" in settings.cors_origins:
        errors.append("CORS_ORIGINS must not contain wildcard '*' in production")

    for origin in settings.cors_origins_list:
        if origin.startswith("http://"):
            errors.append(
                f"CORS_ORIGINS must be https-only in production; found insecure origin: '{origin}'"
            )

    if not settings.site_base_url.startswith("https://"):
        errors.append("SITE_BASE_URL must be an https URL in production")

    if settings.database_url_postgres == "" and settings.database_url.startswith("sqlite"):
        errors.append("SQLite is not supported in production; set DATABASE_URL_POSTGRES")

    return errors


def validate_test_settings(settings: Settings) -> List[str]:
    """Return warnings for a test environment pointed at a non-test database."""
    warnings: List[str] = []
    if settings.database_url.startswith("sqlite://") and "test" not in settings.database_url.lower():
        warnings.append(
            "DATABASE_URL appears to be a non-test SQLite database. "
            "Consider using a separate test database."
        )
    return warnings


def run_startup_validations(settings: Settings) -> None:
    """Run environment-specific startup validations."""
    if settings.is_production:
        errors = validate_production_settings(settings)
        if errors:
            error_msg = "\n".join(f"  - {e}" for e in errors)
            logger.error(f"Production configuration validation failed:\n{error_msg}")
            raise ProductionConfigError(f"Production configuration errors:\n{error_msg}")
        logger.info("Production configuration validation passed")
    elif settings.is_test:
        for warning in validate_test_settings(settings):
            logger.warning(f"Test configuration warning: {warning}")
