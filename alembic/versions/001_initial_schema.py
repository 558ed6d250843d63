"""Initial schema: users, projects, tasks and their child tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ROLES = ('admin', 'project_manager', 'senior_architect', 'junior_architect', 'budget_specialist', 'collaborator')
PROJECT_STATUSES = ('active', 'completed', 'on_hold', 'cancelled')
PROJECT_TYPES = ('stand_imobiliario', 'projeto_arquitetura', 'projeto_estrutural', 'reforma', 'manutencao')
PROJECT_STAGES = ('briefing', 'conceito', 'projeto', 'aprovacao', 'orcamento', 'producao', 'entrega')
TASK_STATUSES = ('aberta', 'em_andamento', 'concluida', 'cancelada')
PRIORITIES = ('baixa', 'media', 'alta', 'critica')
NOTIFICATION_TYPES = ('info', 'warning', 'error', 'success')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('email', sa.String(255), unique=True),
        sa.Column('first_name', sa.String(255)),
        sa.Column('last_name', sa.String(255)),
        sa.Column('profile_image_url', sa.String(500)),
        sa.Column('role', sa.Enum(*USER_ROLES, name='userrole'), nullable=False, server_default='collaborator'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('status', sa.Enum(*PROJECT_STATUSES, name='projectstatus'), nullable=False, server_default='active'),
        sa.Column('project_type', sa.Enum(*PROJECT_TYPES, name='projecttype')),
        sa.Column('stage', sa.Enum(*PROJECT_STAGES, name='projectstage')),
        sa.Column('priority', sa.Enum(*PRIORITIES, name='projectpriority'), nullable=False, server_default='media'),
        sa.Column('start_date', sa.Date),
        sa.Column('end_date', sa.Date),
        sa.Column('client_name', sa.String(255)),
        sa.Column('client_email', sa.String(255)),
        sa.Column('client_phone', sa.String(50)),
        sa.Column('budget', sa.Numeric(12, 2)),
        sa.Column('estimated_hours', sa.Numeric(7, 2)),
        sa.Column('actual_hours', sa.Numeric(7, 2)),
        sa.Column('location', sa.String(255)),
        sa.Column('area', sa.Numeric(10, 2)),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_projects_status', 'projects', ['status'])
    op.create_index('ix_projects_created_at', 'projects', ['created_at'])

    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('status', sa.Enum(*TASK_STATUSES, name='taskstatus'), nullable=False, server_default='aberta'),
        sa.Column('priority', sa.Enum(*PRIORITIES, name='taskpriority'), nullable=False, server_default='media'),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='CASCADE')),
        sa.Column('assigned_user_id', sa.String(255), sa.ForeignKey('users.id')),
        sa.Column('created_user_id', sa.String(255), sa.ForeignKey('users.id')),
        sa.Column('start_date', sa.Date),
        sa.Column('due_date', sa.Date),
        sa.Column('estimated_hours', sa.Numeric(5, 2)),
        sa.Column('actual_hours', sa.Numeric(5, 2)),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_tasks_status', 'tasks', ['status'])
    op.create_index('ix_tasks_priority', 'tasks', ['priority'])
    op.create_index('ix_tasks_project_id', 'tasks', ['project_id'])
    op.create_index('ix_tasks_assigned_user_id', 'tasks', ['assigned_user_id'])
    op.create_index('ix_tasks_due_date', 'tasks', ['due_date'])
    op.create_index('ix_tasks_created_at', 'tasks', ['created_at'])

    op.create_table(
        'task_comments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('task_id', sa.Integer, sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_task_comments_task_id', 'task_comments', ['task_id'])

    op.create_table(
        'task_history',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('task_id', sa.Integer, sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(255), sa.ForeignKey('users.id')),
        sa.Column('changes', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_task_history_task_id', 'task_history', ['task_id'])
    op.create_index('ix_task_history_created_at', 'task_history', ['created_at'])

    op.create_table(
        'files',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('original_name', sa.String(255), nullable=False),
        sa.Column('mime_type', sa.String(100), nullable=False),
        sa.Column('size', sa.Integer, nullable=False),
        sa.Column('path', sa.String(500), nullable=False),
        sa.Column('task_id', sa.Integer, sa.ForeignKey('tasks.id', ondelete='CASCADE')),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='CASCADE')),
        sa.Column('uploaded_user_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_files_task_id', 'files', ['task_id'])
    op.create_index('ix_files_project_id', 'files', ['project_id'])
    op.create_index('ix_files_created_at', 'files', ['created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('type', sa.Enum(*NOTIFICATION_TYPES, name='notificationtype'), nullable=False, server_default='info'),
        sa.Column('is_read', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('related_task_id', sa.Integer, sa.ForeignKey('tasks.id', ondelete='CASCADE')),
        sa.Column('related_project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='CASCADE')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table(
        'time_entries',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('task_id', sa.Integer, sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('start_time', sa.DateTime, nullable=False),
        sa.Column('end_time', sa.DateTime),
        sa.Column('duration', sa.Integer),
        sa.Column('description', sa.Text),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_time_entries_task_id', 'time_entries', ['task_id'])
    op.create_index('ix_time_entries_user_id', 'time_entries', ['user_id'])
    # At most one active entry per user
    op.create_index(
        'uq_time_entries_one_active_per_user',
        'time_entries',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1'),
    )


def downgrade() -> None:
    op.drop_table('time_entries')
    op.drop_table('notifications')
    op.drop_table('files')
    op.drop_table('task_history')
    op.drop_table('task_comments')
    op.drop_table('tasks')
    op.drop_table('projects')
    op.drop_table('users')

    for enum_name in (
        'notificationtype', 'taskpriority', 'taskstatus', 'projectpriority',
        'projectstage', 'projecttype', 'projectstatus', 'userrole',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
