"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the Training Workflow Backend:
- uids: Training sessions with status, assessor profile and staff binding
- students: Learner submissions owned by a UID
- attendance: One attendance sheet per UID
- moderation_pages: One moderation document per UID
- activity_log: Audit trail of committed workflow actions

Also creates indexes for the dashboard query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── UIDs Table ────────────────────────────────────────────
    op.create_table(
        'uids',
        sa.Column('uid', sa.String(16), primary_key=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('assessor_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('assessor_number', sa.Text(), nullable=False, server_default=''),
        sa.Column('assessor_age', sa.Integer(), nullable=True),
        sa.Column('assigned_assessor_id', sa.Text(), nullable=True),
        sa.Column('assigned_moderator_id', sa.Text(), nullable=True),
        sa.Column('student_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('attendance_saved_at', sa.DateTime(), nullable=True),
        sa.Column('sent_to_moderator_at', sa.DateTime(), nullable=True),
        sa.Column('sent_to_admin_at', sa.DateTime(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index('ix_uids_status', 'uids', ['status'])
    op.create_index('ix_uids_assigned_assessor_id', 'uids', ['assigned_assessor_id'])
    op.create_index('ix_uids_assigned_moderator_id', 'uids', ['assigned_moderator_id'])

    # ── Students Table ────────────────────────────────────────
    op.create_table(
        'students',
        sa.Column('uid', sa.String(16),
                  sa.ForeignKey('uids.uid', ondelete='CASCADE'), primary_key=True),
        sa.Column('student_id', sa.String(32), primary_key=True),
        sa.Column('learner_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('company_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.Text(), nullable=False, server_default='pending_review'),
        sa.Column('form_data', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('form_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('moderated_at', sa.DateTime(), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index('ix_students_status', 'students', ['status'])

    # ── Documents ─────────────────────────────────────────────
    op.create_table(
        'attendance',
        sa.Column('uid', sa.String(16),
                  sa.ForeignKey('uids.uid', ondelete='CASCADE'), primary_key=True),
        sa.Column('payload', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('saved_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        'moderation_pages',
        sa.Column('uid', sa.String(16),
                  sa.ForeignKey('uids.uid', ondelete='CASCADE'), primary_key=True),
        sa.Column('form_data', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('status', sa.Text(), nullable=False, server_default='completed'),
        sa.Column('submitted_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Activity Log ──────────────────────────────────────────
    # No foreign key: the trail outlives a deleted UID
    op.create_table(
        'activity_log',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('uid', sa.String(16), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('actor_role', sa.Text(), nullable=False),
        sa.Column('actor_id', sa.Text(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_activity_log_uid', 'activity_log', ['uid'])


def downgrade() -> None:
    op.drop_index('ix_activity_log_uid', table_name='activity_log')
    op.drop_table('activity_log')
    op.drop_table('moderation_pages')
    op.drop_table('attendance')
    op.drop_index('ix_students_status', table_name='students')
    op.drop_table('students')
    op.drop_index('ix_uids_assigned_moderator_id', table_name='uids')
    op.drop_index('ix_uids_assigned_assessor_id', table_name='uids')
    op.drop_index('ix_uids_status', table_name='uids')
    op.drop_table('uids')
