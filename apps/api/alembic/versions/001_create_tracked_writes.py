"""Create tracked_writes for thread log write lifecycle.

Revision ID: 001
Revises: 
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'tracked_writes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cid', sa.String(length=255), nullable=False),
        sa.Column('thread_id', sa.String(length=66), nullable=False),
        sa.Column('message_index', sa.Integer(), nullable=False),
        sa.Column('sender', sa.String(length=42), nullable=False),
        sa.Column('object_key', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'orphaned', 'unpinned')",
            name='ck_tracked_writes_status',
        ),
    )

    # Sweeper scans pending rows by age and orphaned rows by status
    op.create_index('ix_tracked_writes_id', 'tracked_writes', ['id'])
    op.create_index('ix_tracked_writes_cid', 'tracked_writes', ['cid'], unique=True)
    op.create_index('ix_tracked_writes_thread_id', 'tracked_writes', ['thread_id'])
    op.create_index('ix_tracked_writes_created_at', 'tracked_writes', ['created_at'])
    op.create_index('ix_tracked_writes_status', 'tracked_writes', ['status'])


def downgrade() -> None:
    op.drop_index('ix_tracked_writes_status', table_name='tracked_writes')
    op.drop_index('ix_tracked_writes_created_at', table_name='tracked_writes')
    op.drop_index('ix_tracked_writes_thread_id', table_name='tracked_writes')
    op.drop_index('ix_tracked_writes_cid', table_name='tracked_writes')
    op.drop_index('ix_tracked_writes_id', table_name='tracked_writes')
    op.drop_table('tracked_writes')
