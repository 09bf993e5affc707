"""Create planning and Outlook binding tables

Revision ID: 3f1a7c2e9b04
Revises:
Create Date: 2026-10-17

Creates the planning tables the sync engine reads (clients, projects,
planning_tasks, deadline_tasks), with the outlook_event_id reference
columns it writes back, and the per-user calendar_bindings table.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a7c2e9b04'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list:
    return [
        sa.Column('id', sa.CHAR(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table('clients',
        sa.Column('name', sa.String(length=200), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('projects',
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('common_name', sa.String(length=100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('client_id', sa.CHAR(length=32), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('planning_tasks',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('task', sa.Text(), nullable=True),
        sa.Column('project_id', sa.CHAR(length=32), nullable=True),
        sa.Column('outlook_event_id', sa.String(length=512), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('planning_tasks', schema=None) as batch_op:
        batch_op.create_index('ix_planning_tasks_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_planning_tasks_user_date', ['user_id', 'date'], unique=False)

    op.create_table('deadline_tasks',
        sa.Column('created_by', sa.String(length=255), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('deadline_type', sa.String(length=50), nullable=False, server_default='DEADLINE'),
        sa.Column('project_id', sa.CHAR(length=32), nullable=True),
        sa.Column('outlook_event_id', sa.String(length=512), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('deadline_tasks', schema=None) as batch_op:
        batch_op.create_index('ix_deadline_tasks_created_by', ['created_by'], unique=False)

    op.create_table('calendar_bindings',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('calendar_id', sa.String(length=512), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('calendar_bindings', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_bindings_user_id', ['user_id'], unique=True)


def downgrade() -> None:
    with op.batch_alter_table('calendar_bindings', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_bindings_user_id')
    op.drop_table('calendar_bindings')

    with op.batch_alter_table('deadline_tasks', schema=None) as batch_op:
        batch_op.drop_index('ix_deadline_tasks_created_by')
    op.drop_table('deadline_tasks')

    with op.batch_alter_table('planning_tasks', schema=None) as batch_op:
        batch_op.drop_index('ix_planning_tasks_user_date')
        batch_op.drop_index('ix_planning_tasks_user_id')
    op.drop_table('planning_tasks')

    op.drop_table('projects')
    op.drop_table('clients')
