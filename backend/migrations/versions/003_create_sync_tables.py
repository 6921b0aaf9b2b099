"""create sync_schedule, sync_run and sync_lock tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = '003'
down_revision = '002'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create sync schedules, sync run progress and lease-based locks."""

    op.create_table(
        'sync_schedule',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('provider_name', sa.Text, nullable=False),
        sa.Column('enabled', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('frequency_kind', sa.Text, nullable=False),
        sa.Column('frequency_value', sa.Text, nullable=False),
        sa.Column('timezone', sa.Text, nullable=False, server_default='UTC'),
        sa.Column('settings_json', JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('notifications_json', JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('filters_json', JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('state', sa.Text, nullable=False, server_default='idle', comment='idle, due, running, completed, failed'),
        sa.Column('retry_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_status', sa.Text, nullable=True),
        sa.Column('next_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint("frequency_kind IN ('interval', 'cron')", name='ck_sync_schedule_frequency_kind'),
        sa.CheckConstraint(
            "state IN ('idle', 'due', 'running', 'completed', 'failed')",
            name='ck_sync_schedule_state'
        ),
    )
    op.create_index('idx_sync_schedule_due', 'sync_schedule', ['enabled', 'next_run_at'])
    op.create_index('idx_sync_schedule_seller', 'sync_schedule', ['seller_id'])

    op.create_table(
        'sync_run',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('schedule_id', UUID(as_uuid=True), sa.ForeignKey('sync_schedule.id', ondelete='SET NULL'), nullable=True),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('provider_name', sa.Text, nullable=False),
        sa.Column('request_id', sa.Text, nullable=True),
        sa.Column('trigger', sa.Text, nullable=False, server_default='manual'),
        sa.Column('status', sa.Text, nullable=False, server_default='pending'),
        sa.Column('items_total', sa.Integer, nullable=False, server_default='0'),
        sa.Column('items_synced', sa.Integer, nullable=False, server_default='0'),
        sa.Column('items_failed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('error_summary', sa.Text, nullable=True),
        sa.Column('errors_json', JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'running', 'completed', 'failed')", name='ck_sync_run_status'),
    )
    op.create_index('idx_sync_run_seller_provider', 'sync_run', ['seller_id', 'provider_name', sa.text('started_at DESC')])
    op.create_index('idx_sync_run_schedule', 'sync_run', ['schedule_id'])
    op.create_index('idx_sync_run_status', 'sync_run', ['status'])

    op.create_table(
        'sync_lock',
        sa.Column('lock_key', sa.Text, primary_key=True),
        sa.Column('holder', sa.Text, nullable=False),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_sync_lock_expires', 'sync_lock', ['expires_at'])


def downgrade() -> None:
    op.drop_index('idx_sync_lock_expires', table_name='sync_lock')
    op.drop_table('sync_lock')
    op.drop_index('idx_sync_run_status', table_name='sync_run')
    op.drop_index('idx_sync_run_schedule', table_name='sync_run')
    op.drop_index('idx_sync_run_seller_provider', table_name='sync_run')
    op.drop_table('sync_run')
    op.drop_index('idx_sync_schedule_seller', table_name='sync_schedule')
    op.drop_index('idx_sync_schedule_due', table_name='sync_schedule')
    op.drop_table('sync_schedule')
