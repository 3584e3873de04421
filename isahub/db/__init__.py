"""Database module for isahub."""

from isahub.db.database import (
    Base,
    dispose_engine,
    get_db,
    get_engine,
    verify_database_connection,
)
from isahub.db.models import (
    AssetCreator,
    AuditLog,
    Investigation,
    Notification,
    OAuthSession,
    PermissionGrant,
    Policy,
    Programme,
    Project,
    ResourcePublishLog,
    Session,
    Study,
    User,
)

__all__ = [
    # Database infrastructure
    "Base",
    "get_db",
    "get_engine",
    "dispose_engine",
    "verify_database_connection",
    # Accounts
    "User",
    "Session",
    "OAuthSession",
    "AuditLog",
    # Organisation
    "Programme",
    "Project",
    # Access control
    "Policy",
    "PermissionGrant",
    # ISA
    "Investigation",
    "AssetCreator",
    "Study",
    # Publishing
    "ResourcePublishLog",
    "Notification",
]
