"""Gmail credentials and candidate email threads

Revision ID: 0001_gmail_outreach
Revises:
Create Date: 2026-10-18

Creates the per-user Gmail credential table and the per
(user, job, candidate) thread registry.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_gmail_outreach'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'gmail_credentials',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False, unique=True),
        sa.Column('access_token_encrypted', sa.Text(), nullable=False),
        sa.Column('refresh_token_encrypted', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('token_type', sa.String(20), nullable=True),
        sa.Column('scope', sa.Text(), nullable=True),
        sa.Column('account_email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'candidate_email_threads',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('job_id', sa.Uuid(), nullable=False),
        sa.Column('candidate_id', sa.Uuid(), nullable=False),
        sa.Column('thread_id', sa.String(255), nullable=False),
        sa.Column('message_id', sa.String(255), nullable=True),
        sa.Column('rfc_message_id', sa.String(998), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'job_id', 'candidate_id'),
    )
    op.create_index(
        'idx_candidate_email_threads_candidate', 'candidate_email_threads', ['candidate_id']
    )


def downgrade() -> None:
    op.drop_index('idx_candidate_email_threads_candidate', table_name='candidate_email_threads')
    op.drop_table('candidate_email_threads')
    op.drop_table('gmail_credentials')
