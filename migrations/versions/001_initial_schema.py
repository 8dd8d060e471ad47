"""Initial schema with job and job_attempt tables

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

Tables:
- job: one row per submitted video pair, status written by the worker
- job_attempt: one row per worker delivery

Indexes:
- job(status, created_at) - status dashboards / stuck-job queries
- job_attempt(job_id, attempt_no) - UNIQUE, redelivery reuses the row
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    job_status_enum = postgresql.ENUM(
        'queued', 'running', 'completed', 'failed',
        name='job_status',
    )
    attempt_outcome_enum = postgresql.ENUM(
        'success', 'fail',
        name='attempt_outcome',
    )
    job_status_enum.create(op.get_bind(), checkfirst=True)
    attempt_outcome_enum.create(op.get_bind(), checkfirst=True)

    # =========================================================================
    # job table
    # =========================================================================
    op.create_table(
        'job',
        sa.Column('id', sa.Uuid(), nullable=False,
                  comment='Job identifier (UUID v4), same as the queue message jobId'),
        sa.Column('status', postgresql.ENUM(name='job_status', create_type=False),
                  nullable=False, server_default='queued'),
        sa.Column('video1_url', sa.String(length=1024), nullable=False,
                  comment='Blob Store locator of the first input'),
        sa.Column('video2_url', sa.String(length=1024), nullable=False,
                  comment='Blob Store locator of the second input'),
        sa.Column('audio_option', sa.String(length=16), nullable=False,
                  comment='audio1 | audio2 | audioBoth'),
        sa.Column('layout_option', sa.String(length=16), nullable=False,
                  comment='horizontal | vertical'),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'),
                  nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'),
                  nullable=False),
        sa.Column('output_url', sa.String(length=1024), nullable=True,
                  comment='Blob Store locator of the stacked video'),
        sa.Column('error_message', sa.Text(), nullable=True,
                  comment='Last processing or enqueue error'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('attempt_count >= 0', name='ck_job_attempt_count_positive'),
        comment='Video stacking jobs with status tracking'
    )

    op.create_index('ix_job_status', 'job', ['status'])
    op.create_index('ix_job_status_created_at', 'job', ['status', 'created_at'])

    # =========================================================================
    # job_attempt table
    # =========================================================================
    op.create_table(
        'job_attempt',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.Uuid(), nullable=False),
        sa.Column('attempt_no', sa.Integer(), nullable=False,
                  comment='Attempt number (1-indexed)'),
        sa.Column('worker_name', sa.String(length=100), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'),
                  nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('outcome', postgresql.ENUM(name='attempt_outcome', create_type=False),
                  nullable=True, comment='null while running'),
        sa.Column('error_detail', sa.Text(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['job_id'], ['job.id'],
                                ondelete='CASCADE', name='fk_job_attempt_job'),
        sa.UniqueConstraint('job_id', 'attempt_no', name='uq_job_attempt_job_id_attempt_no'),
        sa.CheckConstraint('attempt_no > 0', name='ck_job_attempt_no_positive'),
    )

    op.create_index('ix_job_attempt_job_id', 'job_attempt', ['job_id'])


def downgrade() -> None:
    op.drop_index('ix_job_attempt_job_id', table_name='job_attempt')
    op.drop_table('job_attempt')

    op.drop_index('ix_job_status_created_at', table_name='job')
    op.drop_index('ix_job_status', table_name='job')
    op.drop_table('job')

    op.execute("DROP TYPE IF EXISTS attempt_outcome")
    op.execute("DROP TYPE IF EXISTS job_status")
