"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('username', sa.String(64), unique=True, nullable=False, index=True),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('is_admin', sa.Boolean(), default=False),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'sessions',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token_hash', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('csrf_token', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )

    op.create_table(
        'oauth_sessions',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('provider', sa.String(64), nullable=False),
        sa.Column('access_token_hash', sa.String(255), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )

    op.create_table(
        'programmes',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'projects',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('programme_id', sa.String(32), sa.ForeignKey('programmes.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    for name in ('project_members', 'project_gatekeepers'):
        op.create_table(
            name,
            sa.Column('project_id', sa.String(32), sa.ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
            sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        )

    op.create_table(
        'policies',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('access_type', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'permissions',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('policy_id', sa.String(32), sa.ForeignKey('policies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('contributor_type', sa.String(16), nullable=False),
        sa.Column('contributor_id', sa.String(32), nullable=False),
        sa.Column('access_type', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('policy_id', 'contributor_type', 'contributor_id', name='uq_permission_contributor'),
    )

    op.create_table(
        'investigations',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('other_creators', sa.Text(), nullable=True),
        sa.Column('contributor_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('policy_id', sa.String(32), sa.ForeignKey('policies.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'investigation_projects',
        sa.Column('investigation_id', sa.String(32), sa.ForeignKey('investigations.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('project_id', sa.String(32), sa.ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'asset_creators',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('investigation_id', sa.String(32), sa.ForeignKey('investigations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('creator_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'studies',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('investigation_id', sa.String(32), sa.ForeignKey('investigations.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('contributor_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'resource_publish_logs',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('resource_type', sa.String(64), nullable=False),
        sa.Column('resource_id', sa.String(32), nullable=False),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('publish_state', sa.String(32), nullable=False),
        sa.Column('requested_access_type', sa.Integer(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )
    op.create_index('ix_publish_logs_resource', 'resource_publish_logs', ['resource_type', 'resource_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('kind', sa.String(64), nullable=False),
        sa.Column('recipient_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject', sa.String(255), nullable=False),
        sa.Column('payload_json', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='queued'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notifications_status', 'notifications', ['status'])
    op.create_index('ix_notifications_recipient_id', 'notifications', ['recipient_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('event_type', sa.String(128), nullable=False),
        sa.Column('ip', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('path', sa.String(255), nullable=True),
        sa.Column('method', sa.String(16), nullable=True),
        sa.Column('data_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_event_type', 'audit_logs', ['event_type'])


def downgrade() -> None:
    op.drop_index('ix_audit_logs_event_type', table_name='audit_logs')
    op.drop_index('ix_audit_logs_user_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_created_at', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_notifications_recipient_id', table_name='notifications')
    op.drop_index('ix_notifications_status', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_publish_logs_resource', table_name='resource_publish_logs')
    op.drop_table('resource_publish_logs')
    op.drop_table('studies')
    op.drop_table('asset_creators')
    op.drop_table('investigation_projects')
    op.drop_table('investigations')
    op.drop_table('permissions')
    op.drop_table('policies')
    op.drop_table('project_gatekeepers')
    op.drop_table('project_members')
    op.drop_table('projects')
    op.drop_table('programmes')
    op.drop_table('oauth_sessions')
    op.drop_table('sessions')
    op.drop_table('users')
