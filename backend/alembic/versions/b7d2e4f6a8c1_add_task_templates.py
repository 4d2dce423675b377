"""Add task templates

Revision ID: b7d2e4f6a8c1
Revises: a1f3c5e7d9b2
Create Date: 2026-10-18 10:00:00.000000

Tables:
- task_templates (reusable task presets, personal or global)
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = 'b7d2e4f6a8c1'
down_revision = 'a1f3c5e7d9b2'
branch_labels = None
depends_on = None

# Created by the initial revision
task_priority = postgresql.ENUM('LOW', 'MEDIUM', 'HIGH', 'URGENT', name='taskpriority', create_type=False)


def upgrade() -> None:
    op.create_table(
        'task_templates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('priority', task_priority, nullable=False, server_default='MEDIUM'),
        sa.Column('is_global', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('creator_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_task_templates_creator_id', 'task_templates', ['creator_id'])
    op.create_index('ix_task_templates_is_global', 'task_templates', ['is_global'])


def downgrade() -> None:
    op.drop_index('ix_task_templates_is_global', table_name='task_templates')
    op.drop_index('ix_task_templates_creator_id', table_name='task_templates')
    op.drop_table('task_templates')
