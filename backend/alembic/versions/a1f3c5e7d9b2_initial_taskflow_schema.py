"""Initial TaskFlow schema

Revision ID: a1f3c5e7d9b2
Revises:
Create Date: 2026-10-12 09:00:00.000000

Tables:
- organizations, users, memberships, teams, team_memberships
- tasks, task_history, comments, notifications
- audit_logs (admin actions), ai_audit_logs and ai_conversations (assistant)
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = 'a1f3c5e7d9b2'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('USER', 'TEAM_LEAD', 'MANAGER', 'ADMIN', 'SUPER_ADMIN', name='userrole')
org_role = sa.Enum('MEMBER', 'MANAGER', 'SUPER_ADMIN', name='orgrole')
team_role = sa.Enum('LEADER', 'MEMBER', name='teamrole')
plan_type = sa.Enum('FREE', 'TEAM', 'BUSINESS', 'ENTERPRISE', name='plantype')
task_priority = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'URGENT', name='taskpriority')
task_status = sa.Enum('TODO', 'IN_PROGRESS', 'REVIEW', 'COMPLETED', name='taskstatus')
task_visibility = sa.Enum('PRIVATE', 'TEAM', 'ORGANIZATION', name='taskvisibility')


def _timestamps(updated: bool = True):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=True)]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True))
    return cols


def upgrade() -> None:
    # ── Tenancy ───────────────────────────────────────────────────────────────
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('slug', sa.String, nullable=False),
        sa.Column('plan', plan_type, nullable=False, server_default='FREE'),
        *_timestamps(),
    )
    op.create_index('ix_organizations_name', 'organizations', ['name'])
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String, nullable=False),
        sa.Column('name', sa.String, nullable=False, server_default=''),
        sa.Column('password_hash', sa.String, nullable=False),
        sa.Column('role', user_role, nullable=False, server_default='USER'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('manager_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_is_active', 'users', ['is_active'])
    op.create_index('ix_users_manager_id', 'users', ['manager_id'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])

    op.create_table(
        'memberships',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('role', org_role, nullable=False, server_default='MEMBER'),
        *_timestamps(updated=False),
        sa.UniqueConstraint('user_id', 'organization_id', name='uq_membership_user_org'),
    )
    op.create_index('ix_memberships_user_id', 'memberships', ['user_id'])
    op.create_index('ix_memberships_organization_id', 'memberships', ['organization_id'])

    op.create_table(
        'teams',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'),
                  nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'name', name='uq_team_org_name'),
    )
    op.create_index('ix_teams_organization_id', 'teams', ['organization_id'])

    op.create_table(
        'team_memberships',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('team_id', sa.String(36), sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', team_role, nullable=False, server_default='MEMBER'),
        *_timestamps(updated=False),
        sa.UniqueConstraint('user_id', 'team_id', name='uq_team_membership_user_team'),
    )
    op.create_index('ix_team_memberships_user_id', 'team_memberships', ['user_id'])
    op.create_index('ix_team_memberships_team_id', 'team_memberships', ['team_id'])

    # ── Tasks ─────────────────────────────────────────────────────────────────
    op.create_table(
        'tasks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String, nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('priority', task_priority, nullable=False, server_default='MEDIUM'),
        sa.Column('status', task_status, nullable=False, server_default='TODO'),
        sa.Column('creator_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assigned_to_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'),
                  nullable=True),
        sa.Column('team_id', sa.String(36), sa.ForeignKey('teams.id', ondelete='SET NULL'), nullable=True),
        sa.Column('visibility', task_visibility, nullable=False, server_default='PRIVATE'),
        *_timestamps(),
    )
    for column in ('due_date', 'priority', 'status', 'creator_id', 'assigned_to_id',
                   'organization_id', 'team_id', 'created_at'):
        op.create_index(f'ix_tasks_{column}', 'tasks', [column])
    op.create_index('idx_task_org_visibility', 'tasks', ['organization_id', 'visibility'])
    op.create_index('idx_task_status_due', 'tasks', ['status', 'due_date'])

    op.create_table(
        'task_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('task_id', sa.String(36), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String, nullable=False),
        sa.Column('field', sa.String, nullable=True),
        sa.Column('old_value', sa.String, nullable=True),
        sa.Column('new_value', sa.String, nullable=True),
        *_timestamps(updated=False),
    )
    for column in ('task_id', 'user_id', 'action', 'created_at'):
        op.create_index(f'ix_task_history_{column}', 'task_history', [column])
    op.create_index('idx_history_action_created', 'task_history', ['action', 'created_at'])

    op.create_table(
        'comments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('task_id', sa.String(36), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
    )
    for column in ('task_id', 'user_id', 'created_at'):
        op.create_index(f'ix_comments_{column}', 'comments', [column])

    # ── Notifications ─────────────────────────────────────────────────────────
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String, nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('type', sa.String, nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('task_id', sa.String(36), sa.ForeignKey('tasks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('read', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
    )
    for column in ('type', 'user_id', 'task_id', 'read', 'created_at'):
        op.create_index(f'ix_notifications_{column}', 'notifications', [column])

    # ── Audit ─────────────────────────────────────────────────────────────────
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('entity_type', sa.String, nullable=False),
        sa.Column('entity_id', sa.String, nullable=False),
        sa.Column('action', sa.String, nullable=False),
        sa.Column('actor_id', sa.String(36), nullable=False),
        sa.Column('actor_email', sa.String, nullable=False),
        sa.Column('actor_ip', sa.String, nullable=True),
        sa.Column('user_agent', sa.String, nullable=True),
        sa.Column('changes', sa.JSON, nullable=True),
        sa.Column('metadata', sa.JSON, nullable=True),
        *_timestamps(updated=False),
    )
    for column in ('entity_type', 'entity_id', 'action', 'actor_id', 'created_at'):
        op.create_index(f'ix_audit_logs_{column}', 'audit_logs', [column])
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'])
    op.create_index('idx_audit_actor_created', 'audit_logs', ['actor_id', 'created_at'])

    # ── AI assistant ──────────────────────────────────────────────────────────
    op.create_table(
        'ai_audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String, nullable=False),
        sa.Column('params', sa.JSON, nullable=False),
        sa.Column('result', sa.String, nullable=False),
        sa.Column('error', sa.Text, nullable=True),
        *_timestamps(updated=False),
    )
    for column in ('user_id', 'action', 'created_at'):
        op.create_index(f'ix_ai_audit_logs_{column}', 'ai_audit_logs', [column])

    op.create_table(
        'ai_conversations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('messages', sa.JSON, nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_ai_conversations_user_id', 'ai_conversations', ['user_id'])
    op.create_index('ix_ai_conversations_updated_at', 'ai_conversations', ['updated_at'])


def downgrade() -> None:
    for table in (
        'ai_conversations', 'ai_audit_logs', 'audit_logs', 'notifications', 'comments',
        'task_history', 'tasks', 'team_memberships', 'teams', 'memberships', 'users', 'organizations',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (task_visibility, task_status, task_priority, plan_type, team_role, org_role, user_role):
        enum.drop(bind, checkfirst=True)
