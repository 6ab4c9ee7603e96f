"""Initial schema: users, projects, bugs, bug history, comments, attachments.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.Enum('Developer', 'Tester', 'Admin', name='userrole'), nullable=False, server_default='Developer'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.Text),
        sa.Column('created_by', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    op.create_table(
        'bugs',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='SET NULL')),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('priority', sa.Enum('Low', 'Medium', 'High', 'Critical', name='bugpriority'), nullable=False, server_default='Medium'),
        sa.Column('status', sa.Enum('New', 'In Progress', 'Resolved', 'Closed', name='bugstatus'), nullable=False, server_default='New'),
        sa.Column('reporter_id', sa.Integer, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assignee_id', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('idx_bugs_project', 'bugs', ['project_id'])
    op.create_index('idx_bugs_priority', 'bugs', ['priority'])
    op.create_index('idx_bugs_status', 'bugs', ['status'])
    op.create_index('idx_bugs_assignee', 'bugs', ['assignee_id'])
    op.create_index('idx_bugs_created_at', 'bugs', ['created_at'])

    op.create_table(
        'bug_history',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('bug_id', sa.Integer, sa.ForeignKey('bugs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('field_changed', sa.String(50), nullable=False),
        sa.Column('old_value', sa.Text),
        sa.Column('new_value', sa.Text),
        sa.Column('changed_by', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('changed_at', sa.DateTime, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_bug_history_bug', 'bug_history', ['bug_id'])
    op.create_index('idx_bug_history_changed_at', 'bug_history', ['changed_at'])

    op.create_table(
        'comments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('bug_id', sa.Integer, sa.ForeignKey('bugs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('comment_text', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_comments_bug', 'comments', ['bug_id'])

    op.create_table(
        'attachments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('bug_id', sa.Integer, sa.ForeignKey('bugs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('uploaded_by', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_size', sa.Integer, nullable=False),
        sa.Column('file_path', sa.String(500), nullable=False),
        sa.Column('uploaded_at', sa.DateTime, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_attachments_bug', 'attachments', ['bug_id'])


def downgrade() -> None:
    op.drop_table('attachments')
    op.drop_table('comments')
    op.drop_table('bug_history')
    op.drop_table('bugs')
    op.drop_table('projects')
    op.drop_table('users')

    # Drop enums (PostgreSQL)
    op.execute('DROP TYPE IF EXISTS bugstatus')
    op.execute('DROP TYPE IF EXISTS bugpriority')
    op.execute('DROP TYPE IF EXISTS userrole')
