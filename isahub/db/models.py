"""SQLAlchemy database models."""

import secrets

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from isahub.auth.policy import AccessTier
from isahub.core.time import utcnow
from isahub.db.database import Base


def generate_id() -> str:
    """Generate a unique ID."""
    return secrets.token_urlsafe(16)


project_members = Table(
    "project_members",
    Base.metadata,
    Column("project_id", String(32), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

project_gatekeepers = Table(
    "project_gatekeepers",
    Base.metadata,
    Column("project_id", String(32), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

investigation_projects = Table(
    "investigation_projects",
    Base.metadata,
    Column(
        "investigation_id",
        String(32),
        ForeignKey("investigations.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("project_id", String(32), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(64), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan")
    oauth_sessions = relationship(
        "OAuthSession",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="OAuthSession.created_at.desc()",
    )
    projects = relationship("Project", secondary=project_members, back_populates="members")
    gatekeeper_projects = relationship(
        "Project", secondary=project_gatekeepers, back_populates="gatekeepers"
    )

    @property
    def project_ids(self) -> set:
        return {p.id for p in self.projects}

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class Session(Base):
    """First-party login session backing the session cookie."""

    __tablename__ = "sessions"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(255), nullable=False, unique=True, index=True)
    csrf_token = Column(String(64), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="sessions")

    def __repr__(self) -> str:
        return f"<Session {self.id[:8]}...>"


class OAuthSession(Base):
    """Session granted by an external login provider.

    Removing one only drops the grant; the owning user stays.
    """

    __tablename__ = "oauth_sessions"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider = Column(String(64), nullable=False)
    access_token_hash = Column(String(255), nullable=False)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="oauth_sessions")

    def __repr__(self) -> str:
        return f"<OAuthSession {self.provider} {self.id[:8]}...>"


class Programme(Base):
    """Grouping of projects."""

    __tablename__ = "programmes"

    id = Column(String(32), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    projects = relationship("Project", back_populates="programme")

    def __repr__(self) -> str:
        return f"<Programme {self.title}>"


class Project(Base):
    """Research project; owns members, gatekeepers and ISA content."""

    __tablename__ = "projects"

    id = Column(String(32), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    programme_id = Column(
        String(32), ForeignKey("programmes.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    programme = relationship("Programme", back_populates="projects")
    members = relationship("User", secondary=project_members, back_populates="projects")
    gatekeepers = relationship(
        "User", secondary=project_gatekeepers, back_populates="gatekeeper_projects"
    )
    investigations = relationship(
        "Investigation", secondary=investigation_projects, back_populates="projects"
    )

    def __repr__(self) -> str:
        return f"<Project {self.title} {self.id[:8]}...>"


class Policy(Base):
    """Access policy: a public tier plus explicit grants."""

    __tablename__ = "policies"

    id = Column(String(32), primary_key=True, default=generate_id)
    access_type = Column(Integer, nullable=False, default=int(AccessTier.PRIVATE))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    permissions = relationship(
        "PermissionGrant",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="PermissionGrant.position",
    )

    def __repr__(self) -> str:
        return f"<Policy {AccessTier(self.access_type).name}>"


class PermissionGrant(Base):
    """Access granted to one project or user under a policy."""

    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("policy_id", "contributor_type", "contributor_id", name="uq_permission_contributor"),
    )

    CONTRIBUTOR_TYPES = ("Project", "User")

    id = Column(String(32), primary_key=True, default=generate_id)
    policy_id = Column(
        String(32), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contributor_type = Column(String(16), nullable=False)
    contributor_id = Column(String(32), nullable=False)
    access_type = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    policy = relationship("Policy", back_populates="permissions")

    def __repr__(self) -> str:
        return f"<PermissionGrant {self.contributor_type}:{self.contributor_id[:8]} {self.access_type}>"


class Investigation(Base):
    """Top-level ISA entity."""

    __tablename__ = "investigations"

    id = Column(String(32), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    other_creators = Column(Text, nullable=True)
    contributor_id = Column(
        String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    policy_id = Column(String(32), ForeignKey("policies.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    contributor = relationship("User")
    policy = relationship("Policy", cascade="all, delete-orphan", single_parent=True)
    projects = relationship(
        "Project", secondary=investigation_projects, back_populates="investigations"
    )
    creator_links = relationship(
        "AssetCreator",
        back_populates="investigation",
        cascade="all, delete-orphan",
        order_by="AssetCreator.position",
    )
    studies = relationship("Study", back_populates="investigation", passive_deletes="all")

    @property
    def creators(self) -> list:
        return [link.creator for link in self.creator_links]

    def __repr__(self) -> str:
        return f"<Investigation {self.id[:8]}...>"


class AssetCreator(Base):
    """Ordered creator credit on an investigation."""

    __tablename__ = "asset_creators"

    id = Column(String(32), primary_key=True, default=generate_id)
    investigation_id = Column(
        String(32), ForeignKey("investigations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    creator_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    investigation = relationship("Investigation", back_populates="creator_links")
    creator = relationship("User")


class Study(Base):
    """Study belonging to an investigation."""

    __tablename__ = "studies"

    id = Column(String(32), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    investigation_id = Column(
        String(32), ForeignKey("investigations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    contributor_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    investigation = relationship("Investigation", back_populates="studies")

    def __repr__(self) -> str:
        return f"<Study {self.id[:8]}...>"


class ResourcePublishLog(Base):
    """Publication history of a resource (requests and gatekeeper decisions)."""

    __tablename__ = "resource_publish_logs"
    __table_args__ = (
        Index("ix_publish_logs_resource", "resource_type", "resource_id"),
    )

    WAITING_FOR_APPROVAL = "waiting_for_approval"
    PUBLISHED = "published"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    id = Column(String(32), primary_key=True, default=generate_id)
    resource_type = Column(String(64), nullable=False)
    resource_id = Column(String(32), nullable=False)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    publish_state = Column(String(32), nullable=False)
    requested_access_type = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<ResourcePublishLog {self.resource_type}:{self.resource_id[:8]} {self.publish_state}>"


class Notification(Base):
    """Outbound notification queued for delivery."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_status", "status"),
        Index("ix_notifications_recipient_id", "recipient_id"),
    )

    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"

    id = Column(String(32), primary_key=True, default=generate_id)
    kind = Column(String(64), nullable=False)
    recipient_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subject = Column(String(255), nullable=False)
    payload_json = Column(JSON, nullable=True)
    status = Column(String(16), nullable=False, default=QUEUED)
    created_at = Column(DateTime, default=utcnow)
    sent_at = Column(DateTime, nullable=True)

    recipient = relationship("User")

    def __repr__(self) -> str:
        return f"<Notification {self.kind} {self.status}>"


class AuditLog(Base):
    """Audit log entry for security and operational events."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_created_at", "created_at"),
        Index("ix_audit_logs_user_id", "user_id"),
        Index("ix_audit_logs_event_type", "event_type"),
    )

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    event_type = Column(String(128), nullable=False)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    path = Column(String(255), nullable=True)
    method = Column(String(16), nullable=True)
    data_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<AuditLog {self.event_type} {self.id[:8]}...>"
